"""
Data model shared by every recognizer.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from normalizer import parse_amount, parse_date


class CategorizationMethod(str, Enum):
    """How a category was arrived at."""
    EXACT_MATCH = "exact-match"
    FUZZY_MATCH = "fuzzy-match"
    KEYWORD_RULE = "keyword-rule"
    TFIDF_SIMILARITY = "tfidf-similarity"
    ML_CLASSIFIER = "ml-classifier"
    USER_CONFIRMED = "user-confirmed"
    HISTORICAL_PATTERN = "historical-pattern"


def round_half_up(value: float) -> int:
    """Round to the nearest int with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def clamp_confidence(value: float) -> int:
    """Round a confidence score to an int in [0, 100]."""
    return max(0, min(100, round_half_up(value)))


@dataclass
class Transaction:
    """
    A single expense or income entry.

    Owned by the caller; recognizers only read it, except through
    ``apply_suggestion`` and ``mark_manual_edit``.
    """
    id: str = ""
    date: Optional[Union[date, datetime]] = None
    entity: str = ""
    amount: float = 0.0
    currency: str = "USD"
    category: Optional[str] = None
    subcategory: Optional[str] = None
    confidence: Optional[float] = None
    is_manually_edited: bool = False
    notes: Optional[str] = None

    @property
    def is_categorized(self) -> bool:
        """Whether this transaction carries a non-empty category."""
        return bool(self.category and self.category.strip())

    def to_dict(self) -> Dict[str, Any]:
        """Convert transaction to dictionary."""
        return {
            'id': self.id,
            'date': self.date,
            'entity': self.entity,
            'amount': self.amount,
            'currency': self.currency,
            'category': self.category,
            'subcategory': self.subcategory,
            'confidence': self.confidence,
            'is_manually_edited': self.is_manually_edited,
            'notes': self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """
        Create a transaction from a plain record.

        Accepts both snake_case and camelCase keys, a ``description`` key in
        place of ``entity``, and string dates/amounts.
        """
        raw_date = data.get('date')
        parsed_date = raw_date if isinstance(raw_date, (date, datetime)) else parse_date(raw_date)
        manual = data.get('is_manually_edited', data.get('isManuallyEdited', False))
        return cls(
            id=str(data.get('id', '')),
            date=parsed_date,
            entity=data.get('entity') or data.get('description') or '',
            amount=parse_amount(data.get('amount')),
            currency=data.get('currency') or 'USD',
            category=data.get('category') or None,
            subcategory=data.get('subcategory') or None,
            confidence=data.get('confidence'),
            is_manually_edited=bool(manual),
            notes=data.get('notes'),
        )


@dataclass
class CategorySuggestion:
    """A suggested category with confidence (0-100) and reasoning."""
    category: str
    confidence: int
    reason: str
    method: CategorizationMethod
    subcategory: Optional[str] = None

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> Dict[str, Any]:
        """Convert suggestion to dictionary."""
        result = {
            'category': self.category,
            'confidence': self.confidence,
            'reason': self.reason,
            'method': self.method.value,
        }
        if self.subcategory:
            result['subcategory'] = self.subcategory
        return result


@dataclass
class SimilarTransaction:
    """A categorized history entry and how similar it is to a query."""
    transaction: Transaction
    similarity: float


@dataclass
class LearningPattern:
    """A pattern learned from user categorization behavior."""
    description: str
    category: str
    method: CategorizationMethod
    confidence: int
    timestamp: Optional[Union[date, datetime]] = None
    subcategory: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def apply_suggestion(transaction: Transaction, suggestion: CategorySuggestion) -> Transaction:
    """
    Apply a suggestion to a transaction in place.

    The stored confidence is a 0-1 fraction. ``is_manually_edited`` is
    left untouched.
    """
    transaction.category = suggestion.category
    transaction.subcategory = suggestion.subcategory
    transaction.confidence = suggestion.confidence / 100
    return transaction


def mark_manual_edit(
    transaction: Transaction,
    category: str,
    subcategory: Optional[str] = None
) -> Transaction:
    """Record a user correction, the strongest training signal."""
    transaction.category = category
    transaction.subcategory = subcategory
    transaction.confidence = 1.0
    transaction.is_manually_edited = True
    return transaction
