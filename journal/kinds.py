from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional


class AccountType(str, enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


@dataclass(frozen=True)
class TransactionKind:
    name: str
    source_type: str
    # None means any account type is allowed on that side
    debit_types: Optional[FrozenSet[AccountType]] = None
    credit_types: Optional[FrozenSet[AccountType]] = None

    def allows(self, side: str, account_type: str) -> bool:
        allowed = self.debit_types if side == "debit" else self.credit_types
        return allowed is None or account_type in {t.value for t in allowed}

    def accounts_for(self, side: str, accounts: Iterable[dict]) -> List[dict]:
        return [a for a in accounts if self.allows(side, a.get("accountType", ""))]


MANUAL = TransactionKind(name="manual", source_type="MANUAL")
EXPENSE = TransactionKind(
    name="expense",
    source_type="EXPENSE",
    debit_types=frozenset({AccountType.EXPENSE}),
    credit_types=frozenset({AccountType.ASSET, AccountType.LIABILITY}),
)
REVENUE = TransactionKind(
    name="revenue",
    source_type="REVENUE",
    debit_types=frozenset({AccountType.ASSET}),
    credit_types=frozenset({AccountType.REVENUE}),
)

KINDS = {k.name: k for k in (MANUAL, EXPENSE, REVENUE)}


def get_kind(name: str) -> TransactionKind:
    try:
        return KINDS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown transaction kind: {name!r}") from None
