"""
Text normalization for transaction descriptions.

Every exact-match and pattern recognizer compares descriptions through
``normalize_description`` so that "STARBUCKS #123" and "Starbucks Store 45"
collapse to the same key.
"""
import re
from typing import Any, Iterable, List, Optional

_STORE_NUMBER = re.compile(r'#\d+')
_STORE_LABEL = re.compile(r'\bstore\s*\d+', re.IGNORECASE)
_ASTERISKS = re.compile(r'\*+')
_NON_ALNUM = re.compile(r'[^a-z0-9\s]')
_WHITESPACE = re.compile(r'\s+')


def normalize_description(text: Any) -> str:
    """
    Canonicalize a transaction description for comparison.

    - Lowercase
    - Remove store/location numbers ("#12345", "STORE 123")
    - Turn asterisk separators into spaces ("UBER *EATS" -> "uber eats")
    - Remove everything except letters, digits and spaces
    - Collapse and trim whitespace

    Never raises: non-string or empty input gives an empty string.
    """
    if not text or not isinstance(text, str):
        return ""

    normalized = text.lower()
    normalized = _STORE_NUMBER.sub('', normalized)
    normalized = _ASTERISKS.sub(' ', normalized)
    normalized = _NON_ALNUM.sub('', normalized)
    normalized = _WHITESPACE.sub(' ', normalized).strip()

    # Store labels go last and are stripped until none are left
    while True:
        stripped = _WHITESPACE.sub(' ', _STORE_LABEL.sub('', normalized)).strip()
        if stripped == normalized:
            return normalized
        normalized = stripped


def strip_punctuation(text: Any) -> str:
    """Lowercase and drop non-alphanumerics, keeping store numbers intact."""
    if not text or not isinstance(text, str):
        return ""
    return _NON_ALNUM.sub('', text.lower()).strip()


def tokenize(
    text: str,
    min_length: int = 0,
    stop_words: Optional[Iterable[str]] = None
) -> List[str]:
    """
    Split already-normalized text into tokens.

    Args:
        text: Normalized text
        min_length: Tokens must be strictly longer than this
        stop_words: Tokens to drop

    Returns:
        Tokens in their original order
    """
    stops = set(stop_words) if stop_words else set()
    return [
        word for word in text.split()
        if len(word) > min_length and word not in stops
    ]
