"""
Categorizer module for transaction categorization.
"""
from .models import (
    CategorizationMethod, CategorySuggestion, LearningPattern, SimilarTransaction,
    Transaction, apply_suggestion, mark_manual_edit,
)
from .exact_match import exact_match, calculate_exact_match_confidence
from .rules import DEFAULT_KEYWORD_RULES, Keyword, KeywordMatchKind, KeywordRule
from .rule_engine import (
    RuleEngine, calculate_keyword_confidence, categorize_by_keyword_rule,
    learn_keyword_from_transaction, load_custom_keyword_rules, merge_keyword_rules,
)
from .fuzzy_match import calculate_fuzzy_confidence, find_similar_transactions, fuzzy_match
from .tfidf import (
    TFIDFIndex, TFIDFModel, calculate_tfidf_confidence, categorize_by_tfidf,
    find_similar_by_tfidf,
)
from .patterns import (
    PatternLearner, categorize_by_historical_pattern, extract_patterns_from_history,
)
from .storage import InMemoryStore, JsonFileStore, KeyValueStore
from .classifier import (
    InsufficientTrainingDataError, ModelMetrics, ModelPersistenceError,
    TrainingHistory, TransactionClassifier,
)
from .taxonomy import extract_category_from_records, import_category
from .categorizer import TransactionCategorizer

__all__ = [
    'CategorizationMethod', 'CategorySuggestion', 'LearningPattern', 'SimilarTransaction',
    'Transaction', 'apply_suggestion', 'mark_manual_edit',
    'exact_match', 'calculate_exact_match_confidence',
    'DEFAULT_KEYWORD_RULES', 'Keyword', 'KeywordMatchKind', 'KeywordRule',
    'RuleEngine', 'calculate_keyword_confidence', 'categorize_by_keyword_rule',
    'learn_keyword_from_transaction', 'load_custom_keyword_rules', 'merge_keyword_rules',
    'calculate_fuzzy_confidence', 'find_similar_transactions', 'fuzzy_match',
    'TFIDFIndex', 'TFIDFModel', 'calculate_tfidf_confidence', 'categorize_by_tfidf',
    'find_similar_by_tfidf',
    'PatternLearner', 'categorize_by_historical_pattern', 'extract_patterns_from_history',
    'InMemoryStore', 'JsonFileStore', 'KeyValueStore',
    'InsufficientTrainingDataError', 'ModelMetrics', 'ModelPersistenceError',
    'TrainingHistory', 'TransactionClassifier',
    'extract_category_from_records', 'import_category',
    'TransactionCategorizer',
]
