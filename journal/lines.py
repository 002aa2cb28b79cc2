from __future__ import annotations

from dataclasses import asdict, dataclass, field
import datetime
from typing import Iterable, List, Optional

from .amounts import format_amount, parse_amount, sanitize_blur

DEBIT = "debit"
CREDIT = "credit"
MIN_LINES = 2


@dataclass
class JournalLine:
    id: int
    account_id: str = ""
    description: str = ""
    debit_amount: str = ""
    credit_amount: str = ""

    @property
    def debit(self):
        return parse_amount(self.debit_amount)

    @property
    def credit(self):
        return parse_amount(self.credit_amount)

    @property
    def has_data(self) -> bool:
        return bool(self.account_id) or bool(
            self.description.strip() or self.debit_amount.strip() or self.credit_amount.strip()
        )

    @property
    def is_postable(self) -> bool:
        """An account is chosen and one side carries a positive amount."""
        return bool(self.account_id) and (self.debit > 0 or self.credit > 0)

    @property
    def is_double_sided(self) -> bool:
        return self.debit > 0 and self.credit > 0


@dataclass
class TransactionHeader:
    date: Optional[str] = None
    description: str = ""
    reference: str = ""
    notes: str = ""

    @classmethod
    def today(cls, **kwargs) -> "TransactionHeader":
        return cls(date=datetime.date.today().isoformat(), **kwargs)

    @property
    def has_data(self) -> bool:
        return any(v.strip() for v in (self.description, self.reference, self.notes))


class MinimumLinesError(ValueError):
    pass


@dataclass
class LineSet:
    """Ordered journal lines owned by one entry form."""

    lines: List[JournalLine] = field(default_factory=list)
    next_id: int = 0

    @classmethod
    def blank(cls) -> "LineSet":
        ls = cls()
        for _ in range(MIN_LINES):
            ls.add_line()
        return ls

    @classmethod
    def from_entries(cls, entries: Iterable[dict]) -> "LineSet":
        """Rehydrate a stored transaction's entries into editable lines."""
        ls = cls()
        for entry in entries:
            account = entry.get("account", entry.get("accountId", ""))
            if isinstance(account, dict):
                account = account.get("_id", "")
            ls.add_line(
                account_id=account or "",
                description=entry.get("description") or "",
                debit_amount=format_amount(entry.get("debit")),
                credit_amount=format_amount(entry.get("credit")),
            )
        return ls

    def __iter__(self):
        return iter(self.lines)

    def __len__(self):
        return len(self.lines)

    def get(self, line_id: int) -> JournalLine:
        for line in self.lines:
            if line.id == line_id:
                return line
        raise KeyError(line_id)

    def add_line(self, **values) -> JournalLine:
        line = JournalLine(id=self.next_id, **values)
        self.lines.append(line)
        self.next_id += 1
        return line

    def remove_line(self, line_id: int) -> None:
        if len(self.lines) <= MIN_LINES:
            raise MinimumLinesError(f"Minimum {MIN_LINES} entries required")
        line = self.get(line_id)
        self.lines.remove(line)

    def commit_amount(self, line_id: int, side: str, raw: str) -> str:
        """Blur handler: sanitize and store, clearing the opposite side
        when the committed value is positive."""
        if side not in (DEBIT, CREDIT):
            raise ValueError(f"Unknown side: {side!r}")
        line = self.get(line_id)
        value = sanitize_blur(raw)
        setattr(line, f"{side}_amount", value)
        if parse_amount(value) > 0:
            opposite = CREDIT if side == DEBIT else DEBIT
            setattr(line, f"{opposite}_amount", "")
        return value

    @property
    def has_data(self) -> bool:
        return any(line.has_data for line in self.lines)

    def postable(self) -> List[JournalLine]:
        return [line for line in self.lines if line.is_postable]

    def to_dict(self) -> dict:
        return {"lines": [asdict(line) for line in self.lines], "next_id": self.next_id}

    @classmethod
    def from_dict(cls, data: dict) -> "LineSet":
        lines = [JournalLine(**raw) for raw in data["lines"]]
        next_id = data.get("next_id") or (max((l.id for l in lines), default=-1) + 1)
        return cls(lines=lines, next_id=next_id)
