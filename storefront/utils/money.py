"""Money helpers: parsing, rounding and minor-unit conversion."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

CENT = Decimal('0.01')
HUNDRED = Decimal('100')

Number = Union[int, float, Decimal, str]


def to_decimal(value: Number) -> Decimal:
    """
    Parse a numeric value to Decimal without binary float noise.

    Floats go through str() so 19.99 becomes Decimal('19.99'), not
    Decimal('19.989999999999998436805981327779591083526611328125').

    Raises:
        ValueError: if the value is None, empty, boolean or not numeric.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Invalid number')
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f'Invalid number: {value!r}')
    if not result.is_finite():
        raise ValueError(f'Invalid number: {value!r}')
    return result


def quantize_money(value: Number) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Number) -> int:
    """Major units to integer minor units (12.345 -> 1235)."""
    return int((to_decimal(value) * HUNDRED).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Integer minor units to major units (1235 -> Decimal('12.35'))."""
    return (Decimal(int(cents)) / HUNDRED).quantize(CENT)


def format_money(value: Number) -> str:
    """Format with two decimals, e.g. 40 -> '40.00'."""
    return f"{quantize_money(value):.2f}"
