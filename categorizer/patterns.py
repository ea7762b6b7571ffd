"""
Phase 2d: historical pattern learning.

The learner folds categorized history into three indices:

- merchant patterns, keyed by the first few significant tokens of the
  normalized description
- recurring patterns, keyed by the full normalized description, with a
  day-interval classification of when they recur
- amount patterns, keyed by (category, subcategory), tracking the range and
  running total of amounts

A pattern seen fewer than ``MIN_PATTERN_OCCURRENCES`` times is kept but never
used or listed.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple, Union

from config import (
    AMOUNT_PATTERN_BASE,
    AMOUNT_PATTERN_STEP,
    AMOUNT_TOLERANCE,
    DEFAULT_RECURRING_DAYS,
    DEFAULT_RECURRING_INTERVAL,
    MERCHANT_FINGERPRINT_TOKENS,
    MERCHANT_PATTERN_BASE,
    MERCHANT_PATTERN_CAP,
    MIN_PATTERN_OCCURRENCES,
    PATTERN_FREQUENCY_STEP,
    RECURRING_INTERVALS,
    RECURRING_PATTERN_BASE,
    RECURRING_PATTERN_CAP,
)
from normalizer import days_between, normalize_description, parse_date, tokenize

from .models import (
    CategorizationMethod,
    CategorySuggestion,
    LearningPattern,
    Transaction,
    clamp_confidence,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def extract_merchant(description: str) -> str:
    """Merchant fingerprint: the first significant tokens of a description."""
    tokens = tokenize(normalize_description(description), min_length=2)
    return " ".join(tokens[:MERCHANT_FINGERPRINT_TOKENS])


def is_amount_similar(amount: float, reference: float) -> bool:
    """Whether two amounts are within the relative tolerance of each other."""
    scale = max(abs(amount), abs(reference))
    return abs(amount - reference) <= AMOUNT_TOLERANCE * scale


def classify_interval(average_days: float) -> str:
    """Label an average interval as daily, weekly, monthly or yearly."""
    for label, upper_bound in RECURRING_INTERVALS:
        if average_days <= upper_bound:
            return label
    return "yearly"


def calculate_intervals(dates: Sequence[date]) -> List[float]:
    """Day gaps between consecutive sorted distinct dates."""
    ordered = sorted(set(dates))
    intervals = []
    for earlier, later in zip(ordered, ordered[1:]):
        gap = days_between(earlier, later)
        if gap is not None:
            intervals.append(gap)
    return intervals


# =============================================================================
# Pattern records
# =============================================================================

@dataclass
class MerchantPattern:
    merchant: str
    category: str
    subcategory: Optional[str] = None
    frequency: int = 0
    last_seen: Optional[date] = None
    timestamps: List[date] = field(default_factory=list)
    amounts: List[float] = field(default_factory=list)

    @property
    def is_actionable(self) -> bool:
        return self.frequency >= MIN_PATTERN_OCCURRENCES

    @property
    def confidence(self) -> int:
        return min(
            MERCHANT_PATTERN_CAP,
            MERCHANT_PATTERN_BASE + PATTERN_FREQUENCY_STEP * self.frequency
        )

    def add(self, txn_date: Optional[date], amount: float) -> None:
        self.frequency += 1
        if txn_date is not None:
            self.last_seen = txn_date
            self.timestamps.append(txn_date)
        self.amounts.append(amount)


@dataclass
class RecurringPattern:
    description: str
    category: str
    subcategory: Optional[str] = None
    recurring_interval: str = DEFAULT_RECURRING_INTERVAL
    min_interval: float = DEFAULT_RECURRING_DAYS
    max_interval: float = DEFAULT_RECURRING_DAYS
    average_interval: float = DEFAULT_RECURRING_DAYS
    occurrences: int = 0
    last_seen: Optional[date] = None
    timestamps: List[date] = field(default_factory=list)

    @property
    def is_actionable(self) -> bool:
        return self.occurrences >= MIN_PATTERN_OCCURRENCES

    @property
    def confidence(self) -> int:
        return min(
            RECURRING_PATTERN_CAP,
            RECURRING_PATTERN_BASE + PATTERN_FREQUENCY_STEP * self.occurrences
        )

    def add(self, txn_date: Optional[date]) -> None:
        self.occurrences += 1
        if txn_date is None:
            return

        self.last_seen = txn_date
        self.timestamps = sorted(set(self.timestamps) | {txn_date})

        intervals = calculate_intervals(self.timestamps)
        if intervals:
            self.average_interval = sum(intervals) / len(intervals)
            self.min_interval = min(intervals)
            self.max_interval = max(intervals)
            self.recurring_interval = classify_interval(self.average_interval)


@dataclass
class AmountPattern:
    category: str
    subcategory: Optional[str] = None
    min_amount: float = 0.0
    max_amount: float = 0.0
    total_amount: float = 0.0
    frequency: int = 0

    @property
    def average_amount(self) -> float:
        return self.total_amount / self.frequency if self.frequency else 0.0

    @property
    def is_actionable(self) -> bool:
        return self.frequency >= MIN_PATTERN_OCCURRENCES

    @property
    def confidence(self) -> int:
        return clamp_confidence(AMOUNT_PATTERN_BASE + AMOUNT_PATTERN_STEP * self.frequency)

    def add(self, amount: float) -> None:
        if self.frequency == 0:
            self.min_amount = self.max_amount = amount
        else:
            self.min_amount = min(self.min_amount, amount)
            self.max_amount = max(self.max_amount, amount)
        self.total_amount += amount
        self.frequency += 1


# =============================================================================
# Learner
# =============================================================================

class PatternLearner:
    """
    Learns merchant, recurring and amount patterns from categorized history.

    A learner is mutable and meant for one caller at a time. Folding the same
    history twice counts every entry twice; call ``clear`` first to rebuild.
    """

    def __init__(self):
        self._merchant_patterns: Dict[str, MerchantPattern] = {}
        self._recurring_patterns: Dict[str, RecurringPattern] = {}
        self._amount_patterns: Dict[Tuple[str, Optional[str]], AmountPattern] = {}

    def learn_from_transactions(self, transactions: Sequence[Transaction]) -> None:
        """Fold every categorized transaction into the pattern indices."""
        learned = 0
        for txn in transactions:
            if not txn.is_categorized:
                continue
            txn_date = parse_date(txn.date)
            self._learn_merchant_pattern(txn, txn_date)
            self._learn_recurring_pattern(txn, txn_date)
            self._learn_amount_pattern(txn)
            learned += 1

        logger.info(
            "Learned from %d transactions: %d merchant, %d recurring, %d amount patterns",
            learned, len(self._merchant_patterns),
            len(self._recurring_patterns), len(self._amount_patterns)
        )

    def _learn_merchant_pattern(self, txn: Transaction, txn_date: Optional[date]) -> None:
        merchant = extract_merchant(txn.entity)
        if not merchant:
            return

        pattern = self._merchant_patterns.get(merchant)
        if pattern is None:
            pattern = MerchantPattern(
                merchant=merchant,
                category=txn.category,
                subcategory=txn.subcategory or None,
            )
            self._merchant_patterns[merchant] = pattern
        pattern.add(txn_date, txn.amount)

    def _learn_recurring_pattern(self, txn: Transaction, txn_date: Optional[date]) -> None:
        key = normalize_description(txn.entity)
        if not key:
            return

        pattern = self._recurring_patterns.get(key)
        if pattern is None:
            pattern = RecurringPattern(
                description=txn.entity,
                category=txn.category,
                subcategory=txn.subcategory or None,
            )
            self._recurring_patterns[key] = pattern
        pattern.add(txn_date)

    def _learn_amount_pattern(self, txn: Transaction) -> None:
        key = (txn.category, txn.subcategory or None)
        pattern = self._amount_patterns.get(key)
        if pattern is None:
            pattern = AmountPattern(category=txn.category, subcategory=txn.subcategory or None)
            self._amount_patterns[key] = pattern
        pattern.add(txn.amount)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _merchant_pattern(self, description: str) -> Optional[MerchantPattern]:
        pattern = self._merchant_patterns.get(extract_merchant(description))
        if pattern is not None and pattern.is_actionable:
            return pattern
        return None

    def _recurring_pattern(self, description: str) -> Optional[RecurringPattern]:
        pattern = self._recurring_patterns.get(normalize_description(description))
        if pattern is not None and pattern.is_actionable:
            return pattern
        return None

    def _amount_pattern(self, amount: float) -> Optional[AmountPattern]:
        for pattern in self._amount_patterns.values():
            if pattern.is_actionable and is_amount_similar(amount, pattern.average_amount):
                return pattern
        return None

    def categorize_by_pattern(
        self,
        transaction: Union[Transaction, str],
        amount: Optional[float] = None,
        txn_date: Optional[Union[date, str]] = None
    ) -> Optional[CategorySuggestion]:
        """
        Suggest a category from learned patterns.

        Tries the merchant fingerprint, then the recurring description, then
        (only when a date is known) the amount range.

        Args:
            transaction: A Transaction, or a bare description
            amount: Amount, when ``transaction`` is a description
            txn_date: Date, when ``transaction`` is a description

        Returns:
            CategorySuggestion or None
        """
        if isinstance(transaction, Transaction):
            description = transaction.entity
            amount = transaction.amount if amount is None else amount
            txn_date = transaction.date if txn_date is None else txn_date
        else:
            description = transaction

        if not description or not description.strip():
            return None

        merchant = self._merchant_pattern(description)
        if merchant is not None:
            return CategorySuggestion(
                category=merchant.category,
                subcategory=merchant.subcategory,
                confidence=merchant.confidence,
                reason=(
                    f'Merchant pattern match: "{merchant.merchant}" has been categorized '
                    f'as {merchant.category} {merchant.frequency} times'
                ),
                method=CategorizationMethod.HISTORICAL_PATTERN,
            )

        recurring = self._recurring_pattern(description)
        if recurring is not None:
            return CategorySuggestion(
                category=recurring.category,
                subcategory=recurring.subcategory,
                confidence=recurring.confidence,
                reason=(
                    f'Recurring pattern match: This transaction recurs '
                    f'{recurring.recurring_interval} ({recurring.occurrences} occurrences)'
                ),
                method=CategorizationMethod.HISTORICAL_PATTERN,
            )

        if txn_date and amount is not None:
            by_amount = self._amount_pattern(amount)
            if by_amount is not None:
                return CategorySuggestion(
                    category=by_amount.category,
                    subcategory=by_amount.subcategory,
                    confidence=by_amount.confidence,
                    reason=(
                        f'Amount pattern match: Amount ${amount:.2f} matches historical '
                        f'range for {by_amount.category}'
                    ),
                    method=CategorizationMethod.HISTORICAL_PATTERN,
                )

        return None

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def get_learning_patterns(self) -> List[LearningPattern]:
        """Actionable merchant and recurring patterns, highest confidence first."""
        patterns = [
            LearningPattern(
                description=p.merchant,
                category=p.category,
                subcategory=p.subcategory,
                method=CategorizationMethod.HISTORICAL_PATTERN,
                timestamp=p.last_seen,
                confidence=p.confidence,
                extra={'frequency': p.frequency},
            )
            for p in self.get_merchant_patterns()
        ]
        patterns.extend(
            LearningPattern(
                description=p.description,
                category=p.category,
                subcategory=p.subcategory,
                method=CategorizationMethod.HISTORICAL_PATTERN,
                timestamp=p.last_seen,
                confidence=p.confidence,
                extra={'occurrences': p.occurrences, 'interval': p.recurring_interval},
            )
            for p in self.get_recurring_patterns()
        )
        patterns.sort(key=lambda p: p.confidence, reverse=True)
        return patterns

    def get_merchant_patterns(self) -> List[MerchantPattern]:
        return [p for p in self._merchant_patterns.values() if p.is_actionable]

    def get_recurring_patterns(self) -> List[RecurringPattern]:
        return [p for p in self._recurring_patterns.values() if p.is_actionable]

    def get_amount_patterns(self) -> List[AmountPattern]:
        return [p for p in self._amount_patterns.values() if p.is_actionable]

    def clear(self) -> None:
        """Forget everything learned so far."""
        self._merchant_patterns.clear()
        self._recurring_patterns.clear()
        self._amount_patterns.clear()


def categorize_by_historical_pattern(
    transaction: Union[Transaction, str],
    history: Sequence[Transaction],
    learner: Optional[PatternLearner] = None,
    amount: Optional[float] = None,
    txn_date: Optional[Union[date, str]] = None
) -> Optional[CategorySuggestion]:
    """Fold ``history`` into a learner (fresh unless given) and query it."""
    learner = learner if learner is not None else PatternLearner()
    learner.learn_from_transactions(history)
    return learner.categorize_by_pattern(transaction, amount=amount, txn_date=txn_date)


def extract_patterns_from_history(history: Sequence[Transaction]) -> List[LearningPattern]:
    """Actionable patterns of a history, highest confidence first."""
    learner = PatternLearner()
    learner.learn_from_transactions(history)
    return learner.get_learning_patterns()
