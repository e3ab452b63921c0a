"""
Decimal helpers shared by pricing and statistics.

Prices and amounts are kept as `Decimal` and rounded to 8 decimal
places, the precision the exchange displays.  Sums are re-rounded
after every addition so that many small trades cannot accumulate
drift.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

EIGHT_PLACES = Decimal("0.00000001")

_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?|\.\d+")
_VOLUME_RE = re.compile(r"\$\s*([\d,]*\.?\d+)\s*([KMBT])?", re.IGNORECASE)

# Multipliers converting a dollar amount with suffix into millions
_UNIT_TO_MILLIONS = {
    "": Decimal("0.000001"),
    "K": Decimal("0.001"),
    "M": Decimal("1"),
    "B": Decimal("1000"),
    "T": Decimal("1000000"),
}


def round8(value: Decimal) -> Decimal:
    """Round half-up to 8 decimal places."""
    return value.quantize(EIGHT_PLACES, rounding=ROUND_HALF_UP)


def parse_decimal(text: str) -> Optional[Decimal]:
    """Extract the first number in `text`, ignoring thousands separators.

    ``"1,234.5 USDT"`` gives ``Decimal("1234.5")``; text without any
    digits gives `None`.
    """
    match = _NUMBER_RE.search(text or "")
    if match is None:
        return None
    try:
        return Decimal(match.group(0).replace(",", ""))
    except InvalidOperation:
        return None


def volume_to_millions(text: str) -> Optional[Decimal]:
    """Convert a volume readout like ``$512.3M`` to millions.

    K, M, B and T suffixes are supported.  A bare dollar amount is
    taken as dollars.  Returns `None` when no ``$`` amount is found.
    """
    match = _VOLUME_RE.search(text or "")
    if match is None:
        return None
    try:
        value = Decimal(match.group(1).replace(",", ""))
    except InvalidOperation:
        return None
    unit = (match.group(2) or "").upper()
    return value * _UNIT_TO_MILLIONS[unit]


def format_price(value: Decimal) -> str:
    """Render a price for an input field: at most 8 decimals, no exponent."""
    text = format(round8(value), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"
