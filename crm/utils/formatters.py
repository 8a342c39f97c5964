"""
Formatting helpers for quote documents.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union, Optional


def format_amount(value: Union[int, float, Decimal, str, None], decimals: int = 2) -> str:
    """
    Format a number with thousands separators and a fixed number of decimals.

    Examples:
        format_amount(1500) -> "1,500.00"
        format_amount("648.000") -> "648.00"
        format_amount(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    num = num.quantize(Decimal(10) ** -decimals, rounding=ROUND_HALF_UP)
    if num.is_zero():
        num = abs(num)
    return f"{num:,.{decimals}f}"


def format_money(value, currency: Optional[str] = None, decimals: int = 2) -> str:
    """Amount followed by the ISO currency code, e.g. '648.00 EUR'."""
    formatted = format_amount(value, decimals)
    if formatted == "-" or not currency:
        return formatted
    return f"{formatted} {currency}"


def format_quantity(value) -> str:
    """Quantities without trailing zeros: 3.000 -> '3', 2.500 -> '2.5'."""
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    if num == num.to_integral_value():
        return f"{num.to_integral_value():,}"
    return f"{num.normalize():,f}"


def format_date(value: Union[date, datetime, None]) -> str:
    """ISO-like day format used on documents: 2026-10-18."""
    if value is None:
        return "-"
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime('%Y-%m-%d')
