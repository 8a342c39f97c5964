"""Number parsing utilities for request payloads."""
import re
from decimal import Decimal, InvalidOperation

NUMBER_PATTERN = re.compile(r"^-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")


def parse_decimal(value, allow_negative: bool = False, allow_blank: bool = True):
    """
    Parse a number sent by a client (e.g. 1234.5, "1,234.50") to Decimal.

    Rules:
    - Thousands separator: comma (,) with proper grouping
    - Decimal separator: dot (.)
    - Blank values (None, "") return None when allow_blank

    Raises:
        ValueError: if the value is not a number, or negative when not allowed.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_blank:
            return None
        raise ValueError('A number is required')

    if isinstance(value, bool):
        raise ValueError('Invalid number')

    if isinstance(value, (int, float, Decimal)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            raise ValueError('Invalid number')
    else:
        cleaned = str(value).strip()
        if not NUMBER_PATTERN.match(cleaned):
            raise ValueError(f'Invalid number: {cleaned}')
        try:
            number = Decimal(cleaned.replace(',', ''))
        except (InvalidOperation, ValueError):
            raise ValueError(f'Invalid number: {cleaned}')

    if not number.is_finite():
        raise ValueError('Invalid number')

    if number < 0 and not allow_negative:
        raise ValueError('The value cannot be negative')

    return number
