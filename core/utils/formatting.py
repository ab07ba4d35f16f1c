"""
Display Formatting

USD amounts are shown the way the dashboard widgets show them: en-US
currency format, integer part of the value only, two decimals.
"""

from decimal import Decimal, InvalidOperation
from typing import Union


def format_usd(value: Union[int, float, str, Decimal, None]) -> str:
    """
    Format a USD amount, truncating the value to its integer part first.

    Unparseable input renders as ``$NaN`` like the browser formatter does.

    Examples:
        >>> format_usd("2500.99")
        '$2,500.00'
        >>> format_usd(-1234)
        '-$1,234.00'
    """
    if value is None:
        return "$NaN"
    try:
        amount = int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return "$NaN"

    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}.00"
