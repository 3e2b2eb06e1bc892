"""
Cost calculations in integer minor units.

Balances, prices and costs are whole minor units (cents). Unit counts may
be fractional; the product is rounded UP so a partial minor unit is always
charged rather than given away.
"""

from decimal import Decimal, ROUND_UP, InvalidOperation
from typing import Union

from .errors import InvalidUsage

Units = Union[int, Decimal]

DEFAULT_UNITS = 1


def normalize_units(units) -> Units:
    """Validate a reported unit count and return it as int or Decimal.

    Floats are converted through their string form so 0.1 stays 0.1.

    Raises:
        InvalidUsage: If units is not a finite non-negative number
    """
    if isinstance(units, bool):
        raise InvalidUsage(f"Units must be numeric, got {units!r}")
    if isinstance(units, int):
        value: Units = units
    else:
        try:
            value = Decimal(str(units))
        except (InvalidOperation, ValueError):
            raise InvalidUsage(f"Units must be numeric, got {units!r}")
        if not value.is_finite():
            raise InvalidUsage(f"Units must be finite, got {units!r}")
    if value < 0:
        raise InvalidUsage(f"Units must be >= 0, got {units!r}")
    return value


def calculate_cost(unit_price: int, units: Units) -> int:
    """Calculate the charge for a request.

    Args:
        unit_price: Price per unit in minor units
        units: Units consumed

    Returns:
        Cost in minor units, rounded UP to a whole minor unit

    Raises:
        InvalidUsage: If price or units are negative
    """
    if isinstance(unit_price, bool) or not isinstance(unit_price, int):
        raise InvalidUsage(f"Unit price must be an integer number of minor units, got {unit_price!r}")
    if unit_price < 0:
        raise InvalidUsage(f"Unit price must be >= 0, got {unit_price}")
    units = normalize_units(units)

    if isinstance(units, int):
        return unit_price * units

    cost = Decimal(unit_price) * units
    return int(cost.quantize(Decimal("1"), rounding=ROUND_UP))


def format_minor_units(amount: int, exponent: int = 2) -> str:
    """Render minor units as a currency string, e.g. 12345 -> '$123.45'."""
    value = Decimal(amount).scaleb(-exponent)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(value):,.{exponent}f}"
