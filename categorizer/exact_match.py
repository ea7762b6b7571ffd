"""
Phase 1: exact matching against previously categorized transactions.

A description that normalizes to the same text as a categorized history
entry inherits that entry's category with high confidence.
"""
import logging
from typing import Optional, Sequence

from config import EXACT_MATCH_BASE_CONFIDENCE, EXACT_MATCH_MANUAL_BONUS
from normalizer import normalize_description

from .models import CategorizationMethod, CategorySuggestion, Transaction

logger = logging.getLogger(__name__)


def calculate_exact_match_confidence(match_count: int, manually_edited: bool) -> int:
    """
    Calculate confidence for an exact match.

    - Base confidence: 95
    - +5 if the match was manually edited by a user
    """
    if match_count == 0:
        return 0

    bonus = EXACT_MATCH_MANUAL_BONUS if manually_edited else 0
    return min(100, EXACT_MATCH_BASE_CONFIDENCE + bonus)


def exact_match(
    description: str,
    history: Sequence[Transaction]
) -> Optional[CategorySuggestion]:
    """
    Find identical (normalized) descriptions in history and suggest a category.

    Manually edited matches are preferred over the rest. Among the preferred
    matches the first one in history order wins; history is not re-sorted.

    Args:
        description: The transaction description to match
        history: Historical transactions to search

    Returns:
        CategorySuggestion if a match is found, None otherwise
    """
    if not description or not history:
        return None

    normalized_input = normalize_description(description)
    if not normalized_input:
        return None

    matches = [
        txn for txn in history
        if txn.is_categorized and normalize_description(txn.entity) == normalized_input
    ]
    if not matches:
        return None

    manual_matches = [txn for txn in matches if txn.is_manually_edited]
    preferred = manual_matches or matches
    best = preferred[0]
    user_confirmed = bool(manual_matches)

    logger.debug(
        "Exact match for %r: %d matches (%d manual)",
        normalized_input, len(matches), len(manual_matches)
    )

    return CategorySuggestion(
        category=best.category,
        subcategory=best.subcategory or None,
        confidence=calculate_exact_match_confidence(len(matches), user_confirmed),
        reason=_match_reason(description, len(matches), user_confirmed),
        method=CategorizationMethod.EXACT_MATCH,
    )


def _match_reason(description: str, match_count: int, user_confirmed: bool) -> str:
    match_text = (
        "1 identical transaction" if match_count == 1
        else f"{match_count} identical transactions"
    )
    if user_confirmed:
        return (
            f'Exact match found: "{description}" matches {match_text} '
            f'with user-confirmed category'
        )
    return f'Exact match found: "{description}" matches {match_text} in history'
