"""
Keyword Rule Engine for Transaction Categorization.

This module provides:
- Priority-ordered keyword rule matching with wildcard semantics
- Confidence scoring for keyword matches
- Learning new rules from manually categorized transactions
- Merging rule sets and loading user-defined rules from YAML
"""
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from config import (
    DEFAULT_RULE_PRIORITY,
    KEYWORD_BASE_CONFIDENCE,
    KEYWORD_EXACT_WORD_BONUS,
    KEYWORD_MULTI_WORD_BONUS,
    LEARNED_RULE_PRIORITY,
    get_config,
)
from normalizer import normalize_description, tokenize

from .models import CategorizationMethod, CategorySuggestion, Transaction
from .rules import DEFAULT_KEYWORD_RULES, Keyword, KeywordRule

logger = logging.getLogger(__name__)


def calculate_keyword_confidence(keyword: Union[str, Keyword]) -> int:
    """
    Score a keyword match.

    - Base confidence: 75
    - +10 if the keyword carries no wildcard marker
    - +5 if the keyword has more than one word
    """
    if isinstance(keyword, str):
        keyword = Keyword.parse(keyword)

    confidence = KEYWORD_BASE_CONFIDENCE
    if not keyword.is_wildcard:
        confidence += KEYWORD_EXACT_WORD_BONUS
    if keyword.word_count > 1:
        confidence += KEYWORD_MULTI_WORD_BONUS
    return min(100, confidence)


def _ordered_rules(rules: Iterable[KeywordRule]) -> List[KeywordRule]:
    # sorted() is stable, so declaration order breaks priority ties
    return sorted(rules, key=lambda rule: rule.priority, reverse=True)


def categorize_by_keyword_rule(
    description: str,
    custom_rules: Optional[Sequence[KeywordRule]] = None,
    include_defaults: bool = True
) -> Optional[CategorySuggestion]:
    """
    Categorize a description with keyword rules.

    Rules are tried highest priority first; the first rule with any matching
    keyword wins.

    Args:
        description: Transaction description
        custom_rules: Extra rules appended after the defaults
        include_defaults: Whether to consider the built-in table

    Returns:
        CategorySuggestion or None
    """
    if not description or not description.strip():
        return None

    normalized = normalize_description(description)
    if not normalized:
        return None

    all_rules: List[KeywordRule] = list(DEFAULT_KEYWORD_RULES) if include_defaults else []
    all_rules.extend(custom_rules or [])

    for rule in _ordered_rules(all_rules):
        keyword = rule.first_match(normalized)
        if keyword is None:
            continue

        label = rule.category + (f" - {rule.subcategory}" if rule.subcategory else "")
        logger.debug("Keyword %r matched %r -> %s", keyword.raw, normalized, label)
        return CategorySuggestion(
            category=rule.category,
            subcategory=rule.subcategory or None,
            confidence=calculate_keyword_confidence(keyword),
            reason=f'Keyword match found: "{keyword.raw}" suggests {label}',
            method=CategorizationMethod.KEYWORD_RULE,
        )

    return None


def learn_keyword_from_transaction(
    transaction: Transaction,
    existing_rules: Optional[Sequence[KeywordRule]] = None
) -> Optional[KeywordRule]:
    """
    Derive a keyword rule from one manually categorized transaction.

    If a rule for the same (category, subcategory) exists, returns a copy
    extended with the newly seen tokens, or None when nothing is new.
    Otherwise returns a fresh rule at the learned-rule priority.
    """
    if not transaction.category or not transaction.entity:
        return None

    tokens = tokenize(normalize_description(transaction.entity), min_length=2)
    if not tokens:
        return None

    key = (transaction.category, transaction.subcategory or None)
    existing = next(
        (rule for rule in existing_rules or [] if (rule.category, rule.subcategory or None) == key),
        None
    )

    if existing is not None:
        new_keywords = [kw for kw in dict.fromkeys(tokens) if kw not in existing.keywords]
        if not new_keywords:
            return None
        return KeywordRule(
            category=existing.category,
            subcategory=existing.subcategory,
            keywords=existing.keywords + new_keywords,
            priority=existing.priority,
        )

    return KeywordRule(
        category=transaction.category,
        subcategory=transaction.subcategory or None,
        keywords=list(dict.fromkeys(tokens)),
        priority=LEARNED_RULE_PRIORITY,
    )


def merge_keyword_rules(
    existing_rules: Sequence[KeywordRule],
    new_rules: Sequence[KeywordRule]
) -> List[KeywordRule]:
    """
    Union two rule sets keyed by (category, subcategory).

    Merged rules keep the higher priority and the union of keywords in
    first-seen order. Input rules are not modified.
    """
    merged: List[KeywordRule] = list(existing_rules)
    index: Dict[Any, int] = {}
    for i, rule in enumerate(merged):
        index.setdefault(rule.key, i)

    for new_rule in new_rules:
        position = index.get(new_rule.key)
        if position is None:
            index[new_rule.key] = len(merged)
            merged.append(new_rule)
            continue

        current = merged[position]
        merged[position] = KeywordRule(
            category=current.category,
            subcategory=current.subcategory,
            keywords=list(dict.fromkeys(current.keywords + new_rule.keywords)),
            priority=max(current.priority, new_rule.priority),
        )

    return merged


def rules_from_config(
    raw_rules: Any,
    keyword_groups: Optional[Dict[str, List[str]]] = None
) -> List[KeywordRule]:
    """
    Build rules from the ``keyword_rules`` list of a custom rules file.

    A keyword written as ``@group_name`` expands to every keyword of that
    group in ``keyword_groups``. Malformed entries are skipped.
    """
    groups = keyword_groups or {}
    rules: List[KeywordRule] = []

    for entry in raw_rules or []:
        if not isinstance(entry, dict) or not entry.get('category'):
            continue

        keywords: List[str] = []
        for kw in entry.get('keywords') or []:
            kw = str(kw)
            if kw.startswith('@') and kw[1:] in groups:
                keywords.extend(str(k) for k in groups[kw[1:]])
            else:
                keywords.append(kw)

        if not keywords:
            continue

        rules.append(KeywordRule(
            category=str(entry['category']),
            subcategory=entry.get('subcategory') or None,
            keywords=keywords,
            priority=int(entry.get('priority', DEFAULT_RULE_PRIORITY)),
        ))

    return rules


def load_custom_keyword_rules(path: Optional[str] = None) -> List[KeywordRule]:
    """
    Load user-defined keyword rules.

    Args:
        path: Path to a custom rules YAML file. If None, rules come from the
            Config singleton to avoid reading the YAML file a second time.

    Returns:
        List of rules (empty if none are configured)
    """
    if path is None:
        config = get_config()
        return rules_from_config(
            config.custom_rules.get('keyword_rules'),
            config.keyword_groups
        )

    if not os.path.exists(path):
        logger.info("No custom rules file found at %s", path)
        return []

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not load custom rules from %s: %s", path, e)
        return []

    if not isinstance(data, dict):
        return []
    return rules_from_config(data.get('keyword_rules'), data.get('keyword_groups'))


class RuleEngine:
    """
    Keyword rule engine combining the built-in table with custom rules.

    Rules learned from user corrections are merged into the custom set, so
    later descriptions sharing those tokens pick up the corrected category.
    """

    def __init__(
        self,
        custom_rules: Optional[Sequence[KeywordRule]] = None,
        custom_rules_path: Optional[str] = None
    ):
        """
        Initialize the rule engine.

        Args:
            custom_rules: Rules supplied by the caller
            custom_rules_path: Path to custom_rules.yaml (optional).
                Used only when ``custom_rules`` is None.
        """
        if custom_rules is None:
            custom_rules = load_custom_keyword_rules(custom_rules_path)
        self.custom_rules: List[KeywordRule] = list(custom_rules)

    def categorize(self, description: str) -> Optional[CategorySuggestion]:
        """Categorize a description using defaults plus custom rules."""
        return categorize_by_keyword_rule(description, self.custom_rules)

    def learn(self, transaction: Transaction) -> Optional[KeywordRule]:
        """
        Learn from a manually categorized transaction.

        Returns the new or extended rule, or None if nothing was learned.
        """
        learned = learn_keyword_from_transaction(transaction, self.custom_rules)
        if learned is not None:
            self.custom_rules = merge_keyword_rules(self.custom_rules, [learned])
        return learned

    def export_rules(self) -> str:
        """Serialize the custom rules back to custom_rules.yaml form."""
        return yaml.safe_dump(
            {'keyword_rules': [rule.to_dict() for rule in self.custom_rules]},
            sort_keys=False,
            allow_unicode=True,
        )
