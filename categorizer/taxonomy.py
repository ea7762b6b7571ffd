"""
Validation of externally supplied categories against the taxonomy.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from config import get_category_names, get_subcategories

logger = logging.getLogger(__name__)

Taxonomy = Dict[str, List[str]]


def _as_text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return ""
    return str(value).strip()


def match_category(name: Any, taxonomy: Optional[Taxonomy] = None) -> Optional[str]:
    """
    Canonical category for ``name``, or None.

    Matches case-insensitively on equality, or when either name contains the
    other ("dining" -> "Food & Dining").
    """
    text = _as_text(name).lower()
    if not text:
        return None

    for category in get_category_names(taxonomy):
        candidate = category.lower()
        if candidate == text or candidate in text or text in candidate:
            return category
    return None


def match_subcategory(
    category: str,
    name: Any,
    taxonomy: Optional[Taxonomy] = None
) -> Optional[str]:
    """Canonical subcategory of ``category`` equal to ``name`` ignoring case."""
    text = _as_text(name).lower()
    if not text:
        return None

    for subcategory in get_subcategories(category, taxonomy):
        if subcategory.lower() == text:
            return subcategory
    return None


def import_category(
    category: Any,
    subcategory: Any = None,
    taxonomy: Optional[Taxonomy] = None
) -> Dict[str, str]:
    """
    Resolve an imported category/subcategory pair to taxonomy spelling.

    Returns:
        {'category': ..., 'subcategory': ...}, {'category': ...} when the
        subcategory is unknown, or {} when the category is unknown
    """
    valid_category = match_category(category, taxonomy)
    if valid_category is None:
        return {}

    valid_subcategory = match_subcategory(valid_category, subcategory, taxonomy)
    if valid_subcategory is None:
        return {'category': valid_category}
    return {'category': valid_category, 'subcategory': valid_subcategory}


def extract_category_from_records(
    records: Iterable[Dict[str, Any]],
    taxonomy: Optional[Taxonomy] = None
) -> Dict[str, str]:
    """
    First resolvable category in a list of row dicts.

    The category column is the first header containing "category" (but not
    "subcategory"); the subcategory column is the first header containing
    "subcategory".
    """
    rows = list(records)
    if not rows:
        return {}

    headers = list(rows[0].keys())
    category_key = next(
        (h for h in headers if 'category' in h.lower() and 'subcategory' not in h.lower()),
        None
    )
    if category_key is None:
        return {}
    subcategory_key = next((h for h in headers if 'subcategory' in h.lower()), None)

    for row in rows:
        result = import_category(
            row.get(category_key),
            row.get(subcategory_key) if subcategory_key else None,
            taxonomy
        )
        if result:
            return result

    logger.debug("No known category found in %d records", len(rows))
    return {}
