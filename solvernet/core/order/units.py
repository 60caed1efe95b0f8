"""Conversion between human-readable amounts and smallest-unit integers."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Optional

from .errors import InputInvalid

# Enough precision for any uint256 amount.
_UNIT_PRECISION = 80


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """Parse user amount text; ``None`` for empty, non-numeric or non-finite input."""

    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def is_positive_amount(raw: Optional[str]) -> bool:
    value = parse_amount(raw)
    return value is not None and value > 0


def parse_units(raw: str, decimals: int) -> int:
    """Scale a decimal amount string to an integer in the asset's smallest unit.

    Digits beyond ``decimals`` are truncated.
    """

    value = parse_amount(raw)
    if value is None:
        raise InputInvalid(f"Amount {raw!r} is not a number", details={"amount": raw})
    if value < 0:
        raise InputInvalid(f"Amount {raw!r} is negative", details={"amount": raw})
    with localcontext() as ctx:
        ctx.prec = _UNIT_PRECISION
        scaled = value.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def format_units(amount: int, decimals: int) -> str:
    """Render a smallest-unit integer as a decimal string without trailing zeros."""

    amount = int(amount)
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10 ** decimals)
    fraction_text = str(fraction).zfill(decimals).rstrip("0") if decimals else ""
    if fraction_text:
        return f"{sign}{whole}.{fraction_text}"
    return f"{sign}{whole}"


__all__ = ["parse_amount", "is_positive_amount", "parse_units", "format_units"]
