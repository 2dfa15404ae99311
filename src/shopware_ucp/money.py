"""
Minor-unit monetary primitives.

All amounts handled by the broker are integers in minor currency units
(cents). Platform prices arrive as major-unit decimals and are converted
exactly once, at the mapping boundary, with round-half-up.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Union

from .exceptions import InvalidAmountError

MINOR_UNITS_PER_MAJOR = 100

Number = Union[int, float, str, Decimal]

_ONE = Decimal("1")
_CENT = Decimal("0.01")


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmountError(value)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        # str() drops binary noise such as 19.99 -> 19.989999...
        amount = Decimal(str(value))
    else:
        try:
            amount = Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise InvalidAmountError(value) from e
    if not amount.is_finite():
        raise InvalidAmountError(value)
    return amount


def to_minor_units(value: Number) -> int:
    """Convert a major-unit amount to integer minor units.

    Args:
        value: Major-unit amount (e.g. ``19.99``)

    Returns:
        Minor units, rounded half-up (e.g. ``1999``)

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    amount = _to_decimal(value) * MINOR_UNITS_PER_MAJOR
    return int(amount.quantize(_ONE, rounding=ROUND_HALF_UP))


def from_minor_units(minor: int) -> Decimal:
    """Convert minor units back to a two-decimal major-unit Decimal."""
    return (Decimal(minor) / MINOR_UNITS_PER_MAJOR).quantize(_CENT, rounding=ROUND_HALF_UP)


def format_major(minor: int) -> str:
    """Format minor units as a major-unit string, e.g. ``1000 -> "10.00"``."""
    return f"{from_minor_units(minor):.2f}"


def _tax_component(entry: Any) -> Number:
    if isinstance(entry, dict):
        return entry.get("tax", 0)
    return getattr(entry, "tax", 0)


def sum_taxes(*tax_groups: Iterable[Any]) -> int:
    """Sum the ``tax`` component of every calculated-tax entry.

    Each group is one calculated-tax list (cart price, a delivery's shipping
    costs, ...). Lines at different rates are summed, never merged by rate.
    """
    total = Decimal(0)
    for group in tax_groups:
        for entry in group or ():
            total += _to_decimal(_tax_component(entry))
    return to_minor_units(total)


__all__ = [
    "MINOR_UNITS_PER_MAJOR",
    "to_minor_units",
    "from_minor_units",
    "format_major",
    "sum_taxes",
]
