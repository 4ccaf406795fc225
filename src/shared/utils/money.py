from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from typing import Union

# Type aliases for money and stock quantities
Money = Decimal
Quantity = Decimal

Number = Union[Decimal, float, int, str]


def to_decimal(value: Number | None) -> Decimal:
    """Coerce to Decimal via ``str`` so floats keep their printed value."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    """
    Round monetary value to 2 decimal places using ROUND_HALF_UP.

    Examples:
        >>> round_money(10.125)
        Decimal('10.13')
        >>> round_money(10.124)
        Decimal('10.12')
        >>> round_money("10.115")
        Decimal('10.12')
    """
    value = to_decimal(value)
    if value < 0:
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_DOWN)
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def round_quantity(value: Number) -> Decimal:
    """Round a stock quantity to the 3 decimal places the quantity columns hold."""
    return to_decimal(value).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)
