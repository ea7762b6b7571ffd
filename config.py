"""
Configuration and constants for the transaction categorization engine.

This module provides:
- The default category taxonomy the keyword table is written against
- The scoring constants used by every recognizer
- Support for user-configurable settings via environment variables
- Loading custom rules from YAML files
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

# =============================================================================
# Category Taxonomy
# =============================================================================

DEFAULT_CATEGORIES: Dict[str, List[str]] = {
    "Income": [
        "Salary",
        "Freelance",
        "Investment Returns",
        "Refunds",
        "Other Income",
    ],
    "Housing": [
        "Rent",
        "Mortgage",
        "Property Tax",
        "Home Insurance",
        "Utilities",
        "Maintenance",
        "HOA Fees",
    ],
    "Transportation": [
        "Gas",
        "Public Transit",
        "Car Payment",
        "Car Insurance",
        "Maintenance & Repairs",
        "Parking",
        "Tolls",
    ],
    "Food & Dining": [
        "Groceries",
        "Restaurants",
        "Coffee Shops",
        "Fast Food",
        "Alcohol & Bars",
    ],
    "Shopping": [
        "Clothing",
        "Electronics",
        "Home Goods",
        "Personal Care",
        "Gifts",
    ],
    "Entertainment": [
        "Streaming Services",
        "Movies & Events",
        "Hobbies",
        "Sports",
        "Travel",
    ],
    "Health & Wellness": [
        "Medical",
        "Pharmacy",
        "Dental",
        "Vision",
        "Health Insurance",
        "Fitness",
    ],
    "Bills & Utilities": [
        "Phone",
        "Internet",
        "Subscriptions",
        "Cable",
        "Other Bills",
    ],
    "Financial": [
        "Savings Transfer",
        "Investment",
        "Credit Card Payment",
        "Loan Payment",
        "Bank Fees",
    ],
    "Education": [
        "Tuition",
        "Books",
        "Courses",
        "School Supplies",
    ],
    "Pets": [
        "Food",
        "Veterinary",
        "Supplies",
        "Grooming",
    ],
    "Misc": [],
}

INCOME_CATEGORY: str = "Income"

# =============================================================================
# Phase 1: Exact Match
# =============================================================================

EXACT_MATCH_BASE_CONFIDENCE: int = 95
EXACT_MATCH_MANUAL_BONUS: int = 5

# =============================================================================
# Phase 2a: Keyword Rules
# =============================================================================

KEYWORD_BASE_CONFIDENCE: int = 75
KEYWORD_EXACT_WORD_BONUS: int = 10
KEYWORD_MULTI_WORD_BONUS: int = 5
KEYWORD_WILDCARD: str = "*"

# Priority given to rules learned from a single user correction
LEARNED_RULE_PRIORITY: int = 2
DEFAULT_RULE_PRIORITY: int = 1

# =============================================================================
# Phase 2b: Fuzzy Match
# =============================================================================

FUZZY_SIMILARITY_THRESHOLD: float = float(
    os.environ.get("CATEGORIZER_FUZZY_THRESHOLD", "0.7")
)
FUZZY_MIN_SIMILARITY: float = 0.6

# =============================================================================
# Phase 2c: TF-IDF Similarity
# =============================================================================

TFIDF_SIMILARITY_THRESHOLD: float = float(
    os.environ.get("CATEGORIZER_TFIDF_THRESHOLD", "0.5")
)
TFIDF_MIN_SIMILARITY: float = 0.3
TFIDF_CONFIDENCE_BOOST: int = 20

STOP_WORDS = frozenset([
    "the", "be", "to", "of", "and", "a", "in", "that", "have", "i",
    "it", "for", "not", "on", "with", "he", "as", "you", "do", "at",
    "this", "but", "his", "by", "from", "they", "we", "say", "her", "she",
    "or", "an", "will", "my", "one", "all", "would", "there", "their", "what",
    "so", "if", "out", "about", "who", "get", "which", "go", "me", "when",
    "make", "can", "like", "time", "no", "just", "him", "know", "take", "people",
    "into", "year", "your", "good", "some", "could", "them", "see", "other", "than",
    "then", "now", "look", "only", "come", "its", "over", "think", "also", "back",
    "after", "use", "two", "how", "our", "work", "first", "well", "way", "even",
    "new", "want", "because", "any", "these", "give", "day", "most", "us", "is",
    "are", "was", "were",
])

# =============================================================================
# Phase 2d: Historical Patterns
# =============================================================================

MIN_PATTERN_OCCURRENCES: int = 3
AMOUNT_TOLERANCE: float = 0.2
MERCHANT_FINGERPRINT_TOKENS: int = 3

# Recurring interval upper bounds in days: (label, max average interval)
RECURRING_INTERVALS = (
    ("daily", 2),
    ("weekly", 10),
    ("monthly", 40),
)
DEFAULT_RECURRING_INTERVAL: str = "monthly"
DEFAULT_RECURRING_DAYS: float = 30.0

MERCHANT_PATTERN_BASE: int = 70
MERCHANT_PATTERN_CAP: int = 95
RECURRING_PATTERN_BASE: int = 65
RECURRING_PATTERN_CAP: int = 92
PATTERN_FREQUENCY_STEP: int = 5
AMOUNT_PATTERN_BASE: int = 60
AMOUNT_PATTERN_STEP: int = 2

# =============================================================================
# Phase 3: Trainable Classifier
# =============================================================================

MAX_DESCRIPTION_LENGTH: int = 50
VOCABULARY_SIZE: int = 5000
EMBEDDING_DIM: int = 64
LSTM_UNITS: int = 64
LEARNING_RATE: float = 0.001
ML_MIN_CONFIDENCE: int = 30

DEFAULT_EPOCHS: int = int(os.environ.get("CATEGORIZER_EPOCHS", "10"))
DEFAULT_BATCH_SIZE: int = int(os.environ.get("CATEGORIZER_BATCH_SIZE", "32"))
DEFAULT_VALIDATION_SPLIT: float = float(
    os.environ.get("CATEGORIZER_VALIDATION_SPLIT", "0.2")
)

# Keys used in the key-value store
MODEL_STORAGE_PREFIX: str = os.environ.get(
    "CATEGORIZER_STORAGE_PREFIX", "expense-categorizer"
)
MODEL_WEIGHTS_KEY: str = f"{MODEL_STORAGE_PREFIX}-model"
MODEL_ENCODER_KEY: str = f"{MODEL_STORAGE_PREFIX}-encoder"
MODEL_DECODER_KEY: str = f"{MODEL_STORAGE_PREFIX}-decoder"
MODEL_VOCABULARY_KEY: str = f"{MODEL_STORAGE_PREFIX}-vocabulary"
MODEL_METRICS_KEY: str = f"{MODEL_STORAGE_PREFIX}-metrics"

# =============================================================================
# Orchestration
# =============================================================================

PHASE2_METHODS: List[str] = ["keyword", "fuzzy", "tfidf", "pattern"]

STRATEGY_FIRST_MATCH: str = "first-match"
STRATEGY_HIGHEST_CONFIDENCE: str = "highest-confidence"

# =============================================================================
# Date Formats
# =============================================================================

# Supported date formats in order of preference
DATE_FORMATS: List[str] = [
    "%Y-%m-%d",      # YYYY-MM-DD (ISO format)
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y",      # MM/DD/YYYY
    "%m/%d/%y",      # MM/DD/YY
    "%d %b %Y",      # DD MMM YYYY (like "15 Jan 2025")
    "%d-%b-%Y",      # DD-MMM-YYYY (like "15-Jan-2025")
    "%b %d, %Y",     # MMM DD, YYYY (like "Jan 15, 2025")
    "%d %B %Y",      # DD Month YYYY (like "15 January 2025")
    "%d.%m.%Y",      # DD.MM.YYYY (European format)
]


def get_category_names(taxonomy: Optional[Dict[str, List[str]]] = None) -> List[str]:
    """Get all top-level category names."""
    return list((taxonomy or DEFAULT_CATEGORIES).keys())


def get_subcategories(
    category: str,
    taxonomy: Optional[Dict[str, List[str]]] = None
) -> List[str]:
    """Get subcategories for a given category."""
    return list((taxonomy or DEFAULT_CATEGORIES).get(category, []))


def is_valid_category(
    category: str,
    taxonomy: Optional[Dict[str, List[str]]] = None
) -> bool:
    """Check if a category exists in the taxonomy."""
    return category in (taxonomy or DEFAULT_CATEGORIES)


def is_valid_subcategory(
    category: str,
    subcategory: str,
    taxonomy: Optional[Dict[str, List[str]]] = None
) -> bool:
    """Check if a subcategory exists under a given category."""
    return subcategory in (taxonomy or DEFAULT_CATEGORIES).get(category, [])


# =============================================================================
# Flexible Configuration System
# =============================================================================

class Config:
    """
    Flexible configuration manager that supports:
    - Environment variables
    - Custom YAML configuration files
    - Runtime overrides
    """

    _instance: Optional["Config"] = None
    _custom_rules: Dict[str, Any] = {}
    _settings: Dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_defaults()
            cls._instance._load_custom_config()
        return cls._instance

    def _load_defaults(self) -> None:
        """Load default settings."""
        methods = os.environ.get("CATEGORIZER_PHASE2_METHODS", "")
        self._settings = {
            # Phase 2 settings
            "phase2_methods": (
                [m.strip() for m in methods.split(",") if m.strip()]
                if methods else list(PHASE2_METHODS)
            ),
            "strategy": os.environ.get("CATEGORIZER_STRATEGY", STRATEGY_FIRST_MATCH),
            "fuzzy_threshold": FUZZY_SIMILARITY_THRESHOLD,
            "tfidf_threshold": TFIDF_SIMILARITY_THRESHOLD,

            # Phase 3 settings
            "use_ml": os.environ.get("CATEGORIZER_USE_ML", "true").lower() == "true",
            "epochs": DEFAULT_EPOCHS,
            "batch_size": DEFAULT_BATCH_SIZE,
            "validation_split": DEFAULT_VALIDATION_SPLIT,

            # Persistence
            "model_store_path": os.environ.get("CATEGORIZER_MODEL_STORE", ""),
        }

    def _load_custom_config(self) -> None:
        """Load custom configuration from YAML file if available."""
        config_paths = [
            Path.cwd() / "config.yaml",
            Path.cwd() / "config.yml",
            Path(__file__).parent / "config.yaml",
            Path.home() / ".transaction_categorizer" / "config.yaml",
        ]

        for config_path in config_paths:
            if config_path.exists():
                try:
                    with open(config_path, 'r', encoding='utf-8') as f:
                        custom_config = yaml.safe_load(f) or {}
                    if not isinstance(custom_config, dict):
                        logger.warning("Ignoring %s: top level is not a mapping", config_path)
                        continue
                    self._settings.update(custom_config)
                    logger.info("Loaded config from %s", config_path)
                    break
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Could not load config from %s: %s", config_path, e)

        self._load_custom_rules()

    def _load_custom_rules(self) -> None:
        """Load custom categorization rules from YAML."""
        rules_paths = [
            Path.cwd() / "custom_rules.yaml",
            Path.cwd() / "custom_rules.yml",
            Path(__file__).parent / "custom_rules.yaml",
            Path.home() / ".transaction_categorizer" / "custom_rules.yaml",
        ]

        self._custom_rules = {}
        for rules_path in rules_paths:
            if rules_path.exists():
                try:
                    with open(rules_path, 'r', encoding='utf-8') as f:
                        rules = yaml.safe_load(f) or {}
                    if not isinstance(rules, dict):
                        logger.warning("Ignoring %s: top level is not a mapping", rules_path)
                        continue
                    self._custom_rules = rules
                    logger.info("Loaded custom rules from %s", rules_path)
                    break
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Could not load custom rules from %s: %s", rules_path, e)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value at runtime."""
        self._settings[key] = value

    @property
    def custom_rules(self) -> Dict[str, Any]:
        """Get custom categorization rules."""
        return self._custom_rules

    @property
    def keyword_groups(self) -> Dict[str, List[str]]:
        """Get keyword groups from custom rules."""
        groups = self._custom_rules.get("keyword_groups")
        return groups if isinstance(groups, dict) else {}

    def reload(self) -> None:
        """Reload configuration from files."""
        self._load_defaults()
        self._load_custom_config()


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
