"""
Amount and flag parsers for coercing imported values.
"""
import re
from typing import Any, Optional, Tuple, Union


def parse_amount(value: Union[str, int, float, None]) -> float:
    """
    Parse an amount value from various formats into a float.

    Handles:
    - Thousands separators: "1,234.56"
    - Currency symbols: $, CAD, USD, €, £
    - Negative formats: -1000, (1000), 1000-, 1000 DR

    Args:
        value: A string/number that might be an amount

    Returns:
        A float value (positive or negative), or 0.0 if unparseable
    """
    if value is None or isinstance(value, bool):
        return 0.0

    # If already a number
    if isinstance(value, (int, float)):
        return float(value)

    value_str = str(value).strip()

    if not value_str:
        return 0.0

    amount, _ = _parse_amount_with_sign(value_str)
    return amount


def parse_optional_amount(value: Union[str, int, float, None]) -> Optional[float]:
    """Like parse_amount, but empty or unparseable values give None."""
    if not has_valid_amount(value):
        return None
    return parse_amount(value)


def _parse_amount_with_sign(value_str: str) -> Tuple[float, str]:
    """
    Parse an amount string and determine its sign.

    Args:
        value_str: Raw amount string

    Returns:
        Tuple of (amount as float, sign indicator: 'CR', 'DR', or '')
    """
    value_str = value_str.strip()

    is_negative = False
    sign_indicator = ""

    dr_match = re.search(r'\s*(DR|Dr|dr)\s*$', value_str)
    cr_match = re.search(r'\s*(CR|Cr|cr)\s*$', value_str)

    if dr_match:
        is_negative = True
        sign_indicator = "DR"
        value_str = value_str[:dr_match.start()]
    elif cr_match:
        sign_indicator = "CR"
        value_str = value_str[:cr_match.start()]

    # (1000) means negative
    if value_str.startswith('(') and value_str.endswith(')'):
        is_negative = True
        value_str = value_str[1:-1]

    value_str = _remove_currency_symbols(value_str).strip()

    if value_str.startswith('-'):
        is_negative = True
        value_str = value_str[1:]
    elif value_str.startswith('+'):
        value_str = value_str[1:]

    if value_str.endswith('-'):
        is_negative = True
        value_str = value_str[:-1]

    value_str = _remove_currency_symbols(value_str)
    value_str = value_str.replace(',', '').replace(' ', '')

    if not value_str:
        return 0.0, sign_indicator

    try:
        amount = float(value_str)
    except ValueError:
        return 0.0, sign_indicator

    if is_negative:
        amount = -abs(amount)
    return amount, sign_indicator


def _remove_currency_symbols(value_str: str) -> str:
    """
    Remove currency symbols from a string.

    Args:
        value_str: String potentially containing currency symbols

    Returns:
        String with currency symbols removed
    """
    patterns = [
        r'CAD\s*',         # Canadian dollar
        r'USD\s*',         # US dollar
        r'C?\$\s*',        # Dollar
        r'€\s*',           # Euro
        r'£\s*',           # Pound
    ]

    for pattern in patterns:
        value_str = re.sub(pattern, '', value_str, flags=re.IGNORECASE)

    return value_str


def has_valid_amount(value: Union[str, int, float, None]) -> bool:
    """
    Check if a value contains a parseable amount.

    Args:
        value: A value to check

    Returns:
        True if the value contains a valid amount, False otherwise
    """
    if value is None or isinstance(value, bool):
        return False

    if isinstance(value, (int, float)):
        return True

    value_str = str(value).strip()

    if not value_str:
        return False

    cleaned = _remove_currency_symbols(value_str)
    cleaned = re.sub(r'(DR|CR|Dr|Cr|dr|cr)\s*$', '', cleaned).strip()

    if cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = cleaned[1:-1]

    cleaned = _remove_currency_symbols(cleaned)
    cleaned = cleaned.strip().lstrip('+-').rstrip('-')
    cleaned = cleaned.replace(',', '').replace(' ', '')

    if not cleaned:
        return False

    try:
        float(cleaned)
        return True
    except ValueError:
        return False


def parse_flag(value: Any) -> bool:
    """
    Interpret a stored boolean-ish flag.

    Imports carry flags as 1/0, True/False or '1'/'true' strings.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true')
    return False


def format_currency(amount: Optional[float], include_symbol: bool = True) -> str:
    """
    Format an amount with thousands separators.

    Args:
        amount: The amount to format
        include_symbol: Whether to include the $ symbol

    Returns:
        Formatted currency string, e.g. "-$1,234.50"
    """
    if amount is None:
        return ""

    sign = "-" if amount < 0 else ""
    symbol = "$" if include_symbol else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
