"""Turn a validated line set into the backend's transaction request.

Only call these after `journal.validation.validate` returned OK; nothing
here re-checks the double-entry rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from .amounts import truncate_to_cents
from .kinds import MANUAL, TransactionKind
from .lines import JournalLine, LineSet, TransactionHeader


@dataclass(frozen=True)
class WireEntry:
    account_id: str
    debit: Decimal
    credit: Decimal
    description: str

    def to_payload(self, account_key: str = "accountId") -> dict:
        return {
            account_key: self.account_id,
            "debit": float(self.debit),
            "credit": float(self.credit),
            "description": self.description,
        }


def assemble_entries(header: TransactionHeader, lines: Iterable[JournalLine]) -> List[WireEntry]:
    return [
        WireEntry(
            account_id=line.account_id,
            debit=truncate_to_cents(line.debit) if line.debit > 0 else Decimal("0.00"),
            credit=truncate_to_cents(line.credit) if line.credit > 0 else Decimal("0.00"),
            description=line.description.strip() or header.description,
        )
        for line in lines
        if line.is_postable
    ]


def _header_fields(header: TransactionHeader) -> dict:
    payload = {"date": header.date, "description": header.description.strip()}
    if header.reference.strip():
        payload["reference"] = header.reference.strip()
    if header.notes.strip():
        payload["notes"] = header.notes.strip()
    return payload


def build_create_request(
    *,
    company_id: str,
    header: TransactionHeader,
    line_set: LineSet,
    kind: TransactionKind = MANUAL,
) -> dict:
    """Request body for the backend's create-transaction endpoint."""
    payload = {"companyId": company_id, **_header_fields(header), "sourceType": kind.source_type}
    payload["entries"] = [e.to_payload() for e in assemble_entries(header, line_set)]
    return payload


def build_update_request(*, header: TransactionHeader, line_set: LineSet) -> dict:
    """Request body for the update endpoint, which keys entries by ``account``."""
    payload = _header_fields(header)
    payload["entries"] = [e.to_payload("account") for e in assemble_entries(header, line_set)]
    return payload


def shortcut_line_set(
    *,
    amount: str,
    debit_account_id: str,
    credit_account_id: str,
    description: Optional[str] = "",
) -> LineSet:
    """Two-leg line set for the expense and revenue shortcuts."""
    ls = LineSet()
    ls.add_line(account_id=debit_account_id, description=description or "", debit_amount=amount)
    ls.add_line(account_id=credit_account_id, description=description or "", credit_amount=amount)
    return ls
