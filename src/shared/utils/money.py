from decimal import ROUND_HALF_UP, Decimal
from typing import Union

# Type alias for money values
Money = Decimal


def round_money(value: Union[Decimal, float, int, str]) -> Decimal:
    """
    Round a monetary value (e.g. a reservation deposit) to 2 decimal places.

    Examples:
        >>> round_money(50)
        Decimal('50.00')
        >>> round_money("49.995")
        Decimal('50.00')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value < 0:
        raise ValueError("Money amounts cannot be negative")
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
