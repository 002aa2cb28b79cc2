"""Balance calculation and pre-submission checks for journal entries.

The checks run in a fixed order and stop at the first failure, so the user
always sees one actionable message rather than a list.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from .amounts import ZERO
from .lines import JournalLine, TransactionHeader

TOLERANCE = Decimal("0.01")
MIN_ENTRIES = 2


@dataclass(frozen=True)
class Balance:
    total_debit: Decimal
    total_credit: Decimal

    @property
    def difference(self) -> Decimal:
        return self.total_debit - self.total_credit

    @property
    def is_balanced(self) -> bool:
        return abs(self.difference) < TOLERANCE


def calculate_balance(lines: Iterable[JournalLine]) -> Balance:
    total_debit = ZERO
    total_credit = ZERO
    for line in lines:
        total_debit += line.debit
        total_credit += line.credit
    return Balance(total_debit=total_debit, total_credit=total_credit)


class Reason(str, enum.Enum):
    DESCRIPTION_REQUIRED = "DESCRIPTION_REQUIRED"
    DATE_REQUIRED = "DATE_REQUIRED"
    INSUFFICIENT_ENTRIES = "INSUFFICIENT_ENTRIES"
    DOUBLE_SIDED_LINE = "DOUBLE_SIDED_LINE"
    UNBALANCED = "UNBALANCED"
    ZERO_AMOUNT = "ZERO_AMOUNT"


MESSAGES = {
    Reason.DESCRIPTION_REQUIRED: "Please enter a description",
    Reason.DATE_REQUIRED: "Please select a date",
    Reason.INSUFFICIENT_ENTRIES: f"At least {MIN_ENTRIES} valid entries required",
    Reason.DOUBLE_SIDED_LINE: "Each line can have either a debit OR credit, not both",
    Reason.UNBALANCED: "Debits and credits must be equal. Difference: {difference}",
    Reason.ZERO_AMOUNT: "Transaction amount cannot be zero",
}


@dataclass(frozen=True)
class ValidationResult:
    reason: Optional[Reason] = None
    difference: Optional[Decimal] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    def __bool__(self):
        return self.ok

    @property
    def message(self) -> str:
        if self.reason is None:
            return ""
        return MESSAGES[self.reason].format(difference=f"{abs(self.difference or ZERO):.2f}")

    def as_dict(self) -> dict:
        data = {"ok": self.ok, "reason": self.reason.value if self.reason else None, "message": self.message}
        if self.difference is not None:
            data["difference"] = str(self.difference)
        return data


OK = ValidationResult()


def validate(header: TransactionHeader, lines: Iterable[JournalLine], *, require_date: bool = True) -> ValidationResult:
    lines = list(lines)

    if not (header.description or "").strip():
        return ValidationResult(Reason.DESCRIPTION_REQUIRED)

    if require_date and not header.date:
        return ValidationResult(Reason.DATE_REQUIRED)

    postable = [l for l in lines if l.is_postable]
    if len(postable) < MIN_ENTRIES:
        return ValidationResult(Reason.INSUFFICIENT_ENTRIES)

    if any(l.is_double_sided for l in lines):
        return ValidationResult(Reason.DOUBLE_SIDED_LINE)

    # Totals cover exactly the lines the assembler posts.
    balance = calculate_balance(postable)
    if not balance.is_balanced:
        return ValidationResult(Reason.UNBALANCED, difference=balance.difference)

    if balance.total_debit <= 0:
        return ValidationResult(Reason.ZERO_AMOUNT)

    return OK
