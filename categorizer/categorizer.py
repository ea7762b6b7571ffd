"""
Main categorization orchestrator.

Combines exact matching, the Phase 2 recognizers and the optional trained
classifier into one suggestion per transaction.
"""
import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Union

from config import (
    FUZZY_SIMILARITY_THRESHOLD,
    PHASE2_METHODS,
    STRATEGY_FIRST_MATCH,
    STRATEGY_HIGHEST_CONFIDENCE,
    TFIDF_SIMILARITY_THRESHOLD,
    get_config,
)

from .classifier import TransactionClassifier
from .exact_match import exact_match
from .fuzzy_match import fuzzy_match
from .models import (
    CategorizationMethod,
    CategorySuggestion,
    Transaction,
    apply_suggestion,
    mark_manual_edit,
)
from .patterns import PatternLearner
from .rule_engine import RuleEngine
from .rules import KeywordRule
from .tfidf import TFIDFIndex

logger = logging.getLogger(__name__)

STRATEGIES = (STRATEGY_FIRST_MATCH, STRATEGY_HIGHEST_CONFIDENCE)


class TransactionCategorizer:
    """
    Orchestrates transaction categorization across all phases.

    Strategy:
    1. Exact match against history (Phase 1)
    2. Selected Phase 2 methods in order: keyword, fuzzy, tfidf, pattern.
       With "first-match" the first suggestion wins; with
       "highest-confidence" all run and the most confident wins.
    3. The trained classifier, only if everything above was silent
    """

    def __init__(
        self,
        history: Optional[Sequence[Transaction]] = None,
        phase2_methods: Optional[Sequence[str]] = None,
        strategy: Optional[str] = None,
        classifier: Optional[TransactionClassifier] = None,
        custom_rules: Optional[Sequence[KeywordRule]] = None,
        custom_rules_path: Optional[str] = None,
        fuzzy_threshold: Optional[float] = None,
        tfidf_threshold: Optional[float] = None,
        use_ml: Optional[bool] = None
    ):
        """
        Initialize the categorizer.

        Args:
            history: Previously categorized transactions to learn from
            phase2_methods: Subset of "keyword", "fuzzy", "tfidf", "pattern"
            strategy: "first-match" or "highest-confidence"
            classifier: Trained (or loadable) Phase 3 classifier
            custom_rules: Keyword rules added after the built-in table
            custom_rules_path: custom_rules.yaml to read when no rules are given
            fuzzy_threshold: Minimum fuzzy similarity (0-1)
            tfidf_threshold: Minimum TF-IDF similarity (0-1)
            use_ml: Whether Phase 3 may be consulted by ``suggest``

        Raises:
            ValueError: unknown Phase 2 method or strategy
        """
        config = get_config()

        methods = phase2_methods if phase2_methods is not None else config.get(
            "phase2_methods", PHASE2_METHODS
        )
        unknown = [m for m in methods if m not in PHASE2_METHODS]
        if unknown:
            raise ValueError(f"Unknown Phase 2 methods: {', '.join(unknown)}")
        # Declared order, whatever order the caller listed them in
        self.phase2_methods = [m for m in PHASE2_METHODS if m in methods]

        self.strategy = strategy or config.get("strategy", STRATEGY_FIRST_MATCH)
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {self.strategy}")

        self.fuzzy_threshold = (
            fuzzy_threshold if fuzzy_threshold is not None
            else config.get("fuzzy_threshold", FUZZY_SIMILARITY_THRESHOLD)
        )
        self.tfidf_threshold = (
            tfidf_threshold if tfidf_threshold is not None
            else config.get("tfidf_threshold", TFIDF_SIMILARITY_THRESHOLD)
        )
        self.use_ml = config.get("use_ml", True) if use_ml is None else use_ml

        self.rule_engine = RuleEngine(custom_rules, custom_rules_path)
        self.pattern_learner = PatternLearner()
        self.tfidf_index = TFIDFIndex()
        self.classifier = classifier
        self.history: List[Transaction] = []

        self._stats = self._empty_stats(0)

        if history:
            self.learn(history)

    @staticmethod
    def _empty_stats(total: int) -> Dict[str, int]:
        stats = {'total': total, 'already_categorized': 0, 'uncategorized': 0}
        stats.update({method.value: 0 for method in CategorizationMethod})
        return stats

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def learn(self, history: Sequence[Transaction]) -> None:
        """Replace the history and rebuild the pattern learner and TF-IDF index."""
        self.history = list(history)

        self.pattern_learner.clear()
        self.pattern_learner.learn_from_transactions(self.history)

        self.tfidf_index.reset()
        self.tfidf_index.train(self.history)

        logger.info("Categorizer learned from %d history transactions", len(self.history))

    def record_correction(
        self,
        transaction: Transaction,
        category: str,
        subcategory: Optional[str] = None
    ) -> Optional[KeywordRule]:
        """
        Apply a user correction and learn from it.

        The transaction is marked as manually edited, added to history if it
        is not there yet, and turned into a keyword rule.

        Returns:
            The learned or extended keyword rule, if any
        """
        mark_manual_edit(transaction, category, subcategory)
        if not any(txn is transaction for txn in self.history):
            self.history.append(transaction)

        learned = self.rule_engine.learn(transaction)
        self.learn(self.history)
        return learned

    def train_classifier(self, **options) -> None:
        """
        Train the classifier on the current history.

        Keyword options are passed to ``TransactionClassifier.train_model``.
        """
        if self.classifier is None:
            self.classifier = TransactionClassifier()
        self.classifier.train_model(self.history, **options)

    # -------------------------------------------------------------------------
    # Suggestions
    # -------------------------------------------------------------------------

    def _phase2_suggestion(
        self,
        method: str,
        description: str,
        amount: Optional[float],
        txn_date: Optional[Union[date, str]]
    ) -> Optional[CategorySuggestion]:
        if method == "keyword":
            return self.rule_engine.categorize(description)
        if method == "fuzzy":
            return fuzzy_match(description, self.history, amount, self.fuzzy_threshold)
        if method == "tfidf":
            return self.tfidf_index.categorize(description, self.tfidf_threshold)
        if method == "pattern":
            return self.pattern_learner.categorize_by_pattern(
                description, amount=amount, txn_date=txn_date
            )
        return None

    def _phase2(
        self,
        description: str,
        amount: Optional[float],
        txn_date: Optional[Union[date, str]]
    ) -> Optional[CategorySuggestion]:
        if self.strategy == STRATEGY_FIRST_MATCH:
            for method in self.phase2_methods:
                suggestion = self._phase2_suggestion(method, description, amount, txn_date)
                if suggestion is not None:
                    return suggestion
            return None

        suggestions = [
            s for s in (
                self._phase2_suggestion(method, description, amount, txn_date)
                for method in self.phase2_methods
            )
            if s is not None
        ]
        if not suggestions:
            return None
        # max() keeps the earliest method on ties
        return max(suggestions, key=lambda s: s.confidence)

    def _ml_available(self) -> bool:
        return self.classifier is not None and self.classifier.is_model_trained()

    def suggest(
        self,
        transaction: Union[Transaction, str],
        amount: Optional[float] = None,
        txn_date: Optional[Union[date, str]] = None
    ) -> Optional[CategorySuggestion]:
        """
        Suggest a category for one transaction or bare description.

        Args:
            transaction: Transaction, or a description string
            amount: Amount, when ``transaction`` is a description
            txn_date: Date, when ``transaction`` is a description

        Returns:
            CategorySuggestion, or None to leave the transaction uncategorized
        """
        if isinstance(transaction, Transaction):
            description = transaction.entity
            amount = transaction.amount if amount is None else amount
            txn_date = transaction.date if txn_date is None else txn_date
        else:
            description = transaction

        if not description or not description.strip():
            return None

        suggestion = exact_match(description, self.history)
        if suggestion is not None:
            logger.debug("Phase 1 matched %r", description)
            return suggestion

        suggestion = self._phase2(description, amount, txn_date)
        if suggestion is not None:
            logger.debug("Phase 2 (%s) matched %r", suggestion.method.value, description)
            return suggestion

        if self.use_ml and self._ml_available():
            return self.classifier.predict_category(description)

        return None

    def explain(
        self,
        description: str,
        amount: Optional[float] = None,
        txn_date: Optional[Union[date, str]] = None
    ) -> Dict[str, Optional[CategorySuggestion]]:
        """
        Every phase's opinion on a description, including the classifier's.

        Returns:
            Mapping of "exact", each configured Phase 2 method and "ml" to a
            suggestion or None
        """
        opinions: Dict[str, Optional[CategorySuggestion]] = {
            'exact': exact_match(description, self.history),
        }
        for method in self.phase2_methods:
            opinions[method] = self._phase2_suggestion(method, description, amount, txn_date)
        opinions['ml'] = self.classifier.predict_category(description) if self._ml_available() else None
        return opinions

    def categorize_all(self, transactions: List[Transaction]) -> List[Transaction]:
        """
        Categorize every uncategorized transaction in place.

        Transactions that already carry a category are left alone.

        Args:
            transactions: List of transactions to categorize

        Returns:
            Same list of transactions with categorization fields populated
        """
        total = len(transactions)
        self._stats = self._empty_stats(total)

        logger.info("Categorizing %d transactions (strategy: %s)", total, self.strategy)

        for txn in transactions:
            if txn.is_categorized:
                self._stats['already_categorized'] += 1
                continue

            suggestion = self.suggest(txn)
            if suggestion is None:
                self._stats['uncategorized'] += 1
                continue

            apply_suggestion(txn, suggestion)
            self._stats[suggestion.method.value] += 1

        self._log_summary()
        return transactions

    def _log_summary(self) -> None:
        total = self._stats['total']
        if total == 0:
            return

        matched = {
            method.value: self._stats[method.value]
            for method in CategorizationMethod
            if self._stats[method.value]
        }
        logger.info(
            "Categorization summary: %d total, %d already categorized, %d left uncategorized, by method: %s",
            total, self._stats['already_categorized'], self._stats['uncategorized'], matched
        )

    def get_statistics(self) -> dict:
        """
        Get categorization statistics of the last ``categorize_all`` run.

        Returns:
            Dictionary with counts per method plus totals
        """
        return self._stats.copy()
