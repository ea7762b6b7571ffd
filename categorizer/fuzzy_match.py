"""
Phase 2b: Levenshtein-similarity nearest neighbour over categorized history.
"""
import logging
from typing import List, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from config import FUZZY_MIN_SIMILARITY, FUZZY_SIMILARITY_THRESHOLD, INCOME_CATEGORY

from .models import (
    CategorizationMethod,
    CategorySuggestion,
    SimilarTransaction,
    Transaction,
    round_half_up,
)

logger = logging.getLogger(__name__)


def calculate_similarity(first: str, second: str) -> float:
    """
    Similarity as (maxLen - distance) / maxLen.

    Two empty strings are identical (1.0).
    """
    return Levenshtein.normalized_similarity(first, second)


def calculate_fuzzy_confidence(similarity: float) -> int:
    """Confidence for a fuzzy match, never below the match floor."""
    return max(int(FUZZY_MIN_SIMILARITY * 100), round_half_up(similarity * 100))


def _prepare(text: str) -> str:
    return (text or "").lower().strip()


def fuzzy_match(
    description: str,
    history: Sequence[Transaction],
    amount: Optional[float] = None,
    threshold: float = FUZZY_SIMILARITY_THRESHOLD
) -> Optional[CategorySuggestion]:
    """
    Suggest the category of the most similar categorized history entry.

    A positive ``amount`` restricts the pool to Income entries; otherwise
    Income entries are excluded. Ties keep the earliest entry in history.

    Args:
        description: Transaction description
        history: Historical transactions
        amount: Optional amount of the transaction being categorized
        threshold: Minimum similarity (0-1) to accept

    Returns:
        CategorySuggestion or None
    """
    if not description or not description.strip() or not history:
        return None

    query = _prepare(description)
    income_only = (amount or 0) > 0

    best: Optional[Transaction] = None
    best_similarity = 0.0

    for txn in history:
        if not txn.is_categorized:
            continue
        if (txn.category == INCOME_CATEGORY) != income_only:
            continue

        similarity = calculate_similarity(query, _prepare(txn.entity))
        if similarity > best_similarity and similarity >= FUZZY_MIN_SIMILARITY:
            best_similarity = similarity
            best = txn

    if best is None or best_similarity < threshold:
        return None

    confidence = calculate_fuzzy_confidence(best_similarity)
    logger.debug("Fuzzy match %r ~ %r (%.3f)", query, best.entity, best_similarity)

    return CategorySuggestion(
        category=best.category,
        subcategory=best.subcategory or None,
        confidence=confidence,
        reason=(
            f'Fuzzy match found: "{description}" is similar to "{best.entity}" '
            f'with {confidence}% similarity'
        ),
        method=CategorizationMethod.FUZZY_MATCH,
    )


def find_similar_transactions(
    description: str,
    history: Sequence[Transaction],
    limit: int = 5
) -> List[SimilarTransaction]:
    """
    Top ``limit`` categorized history entries by similarity, best first.

    Entries below the similarity floor are dropped.
    """
    if not description or not description.strip() or not history:
        return []

    query = _prepare(description)
    results = [
        SimilarTransaction(txn, calculate_similarity(query, _prepare(txn.entity)))
        for txn in history
        if txn.is_categorized
    ]
    results = [r for r in results if r.similarity >= FUZZY_MIN_SIMILARITY]
    results.sort(key=lambda r: r.similarity, reverse=True)
    return results[:limit]
