"""
Amount parser for transaction amounts supplied as text.
"""
import re
from typing import Tuple, Union

_CURRENCY_PATTERNS = [
    r'USD\s*',         # USD
    r'EUR\s*',         # EUR
    r'GBP\s*',         # GBP
    r'INR\s*',         # INR
    r'\$\s*',          # Dollar
    r'€\s*',           # Euro
    r'£\s*',           # Pound
    r'₹\s*',           # Rupee symbol
]

_DR_SUFFIX = re.compile(r'\s*(DR|Dr|dr)\s*$')
_CR_SUFFIX = re.compile(r'\s*(CR|Cr|cr)\s*$')


def parse_amount(value: Union[str, int, float, None]) -> float:
    """
    Parse an amount value from various formats into a float.

    Handles:
    - Thousands separators: "1,234.56"
    - Currency symbols and codes: $, €, £, USD
    - Negative formats: -1000, (1000), 1000-, 1000 DR

    Args:
        value: A string/number that might be an amount

    Returns:
        A float value (positive or negative), or 0.0 if unparseable
    """
    if value is None:
        return 0.0

    if isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        return float(value)

    value_str = str(value).strip()

    if not value_str:
        return 0.0

    amount, _ = _parse_amount_with_sign(value_str)
    return amount


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

    dr_match = _DR_SUFFIX.search(value_str)
    cr_match = _CR_SUFFIX.search(value_str)

    if dr_match:
        is_negative = True
        sign_indicator = "DR"
        value_str = value_str[:dr_match.start()]
    elif cr_match:
        sign_indicator = "CR"
        value_str = value_str[:cr_match.start()]

    value_str = value_str.strip()

    # (1000) means negative
    if value_str.startswith('(') and value_str.endswith(')'):
        is_negative = True
        value_str = value_str[1:-1]

    value_str = _remove_currency_symbols(value_str).strip()

    if value_str.startswith('-'):
        is_negative = True
        value_str = value_str[1:]

    if value_str.endswith('-'):
        is_negative = True
        value_str = value_str[:-1]

    value_str = _remove_currency_symbols(value_str).strip()

    if not value_str:
        return 0.0, sign_indicator

    value_str = value_str.replace(',', '').replace(' ', '')

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
    for pattern in _CURRENCY_PATTERNS:
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

    cleaned = _remove_currency_symbols(str(value).strip())
    cleaned = re.sub(r'(DR|CR|Dr|Cr|dr|cr)\s*$', '', cleaned).strip()

    if cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = cleaned[1:-1]

    cleaned = _remove_currency_symbols(cleaned.strip('-').strip())
    cleaned = cleaned.replace(',', '').replace(' ', '')

    if not cleaned:
        return False

    try:
        float(cleaned)
        return True
    except ValueError:
        return False
