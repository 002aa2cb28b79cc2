"""Amount parsing and input sanitization.

Amounts are edited as free text so that a half-typed value such as ``"12."``
survives between keystrokes. They only become numbers when the balance is
computed or the transaction is assembled for the backend.

- `sanitize_keystroke` runs on every input event.
- `sanitize_blur` runs when the field loses focus and is idempotent.
- `parse_amount` never raises: blank, ``"."`` and garbage count as zero.
"""

from __future__ import annotations

import re
from decimal import ROUND_DOWN, Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Leading numeric prefix, the way a browser's parseFloat reads "12.5abc".
_NUMERIC_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+))")
_NOT_AMOUNT_CHAR = re.compile(r"[^0-9.]")


def parse_amount(value) -> Decimal:
    """Parse a typed amount leniently; unparsable or non-finite input is zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        match = _NUMERIC_PREFIX.match(str(value))
        if not match:
            return ZERO
        amount = Decimal(match.group(1))
    return amount if amount.is_finite() else ZERO


def sanitize_keystroke(value: str) -> str:
    filtered = _NOT_AMOUNT_CHAR.sub("", value or "")
    if filtered.count(".") > 1:
        head, *rest = filtered.split(".")
        filtered = head + "." + "".join(rest)
    return filtered


def sanitize_blur(value: str) -> str:
    cleaned = sanitize_keystroke((value or "").strip())
    if cleaned in ("", "."):
        return ""

    whole, dot, fraction = cleaned.partition(".")
    fraction = fraction[:2]
    if whole:
        whole = whole.lstrip("0") or "0"
    if not fraction:
        return whole or ""
    return f"{whole}{dot}{fraction}"


def truncate_to_cents(amount: Decimal) -> Decimal:
    """Drop digits beyond the cent; never rounds up."""
    return amount.quantize(CENT, rounding=ROUND_DOWN)


def format_amount(value) -> str:
    """Render a stored numeric amount for an editable field ("" for zero)."""
    amount = parse_amount(value)
    if amount == 0:
        return ""
    return format(amount.normalize(), "f")
