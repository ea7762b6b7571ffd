"""
Keyword rules for transaction categorization.

Each rule maps a category (and optional subcategory) to keyword phrases.
A keyword may carry a wildcard marker:

    "grocery"     literal, matches anywhere in the description
    "grocery*"    description starts with "grocery"
    "*grocery"    description ends with "grocery"
    "*grocery*"   matches anywhere, scored as a wildcard match
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from config import DEFAULT_RULE_PRIORITY, KEYWORD_WILDCARD
from normalizer import normalize_description


class KeywordMatchKind(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    SUBSTRING = "substring"


@dataclass(frozen=True)
class Keyword:
    """A keyword parsed once into its match kind and normalized text."""
    kind: KeywordMatchKind
    text: str
    raw: str

    @classmethod
    def parse(cls, raw: str) -> 'Keyword':
        """Decide the match kind from wildcard markers."""
        starts = raw.startswith(KEYWORD_WILDCARD)
        ends = raw.endswith(KEYWORD_WILDCARD)
        text = normalize_description(raw.replace(KEYWORD_WILDCARD, ' '))

        if starts and ends:
            kind = KeywordMatchKind.SUBSTRING
        elif starts:
            kind = KeywordMatchKind.SUFFIX
        elif ends:
            kind = KeywordMatchKind.PREFIX
        else:
            kind = KeywordMatchKind.EXACT
        return cls(kind=kind, text=text, raw=raw)

    @property
    def is_wildcard(self) -> bool:
        return self.kind != KeywordMatchKind.EXACT

    @property
    def word_count(self) -> int:
        return len(self.raw.replace(KEYWORD_WILDCARD, ' ').split())

    def matches(self, normalized_description: str) -> bool:
        """Check this keyword against an already-normalized description."""
        if not self.text:
            return False
        if self.kind == KeywordMatchKind.PREFIX:
            return normalized_description.startswith(self.text)
        if self.kind == KeywordMatchKind.SUFFIX:
            return normalized_description.endswith(self.text)
        return self.text in normalized_description


@dataclass
class KeywordRule:
    """
    A category rule made of keyword phrases.

    ``keywords`` keeps the raw strings (with wildcard markers) so rules can be
    merged, learned and written back to YAML; the parsed form lives in
    ``patterns`` and is built once at construction.
    """
    category: str
    keywords: List[str]
    subcategory: Optional[str] = None
    priority: int = DEFAULT_RULE_PRIORITY
    patterns: List[Keyword] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.keywords = list(self.keywords)
        self.patterns = [Keyword.parse(kw) for kw in self.keywords]

    @property
    def key(self):
        return (self.category, self.subcategory)

    def first_match(self, normalized_description: str) -> Optional[Keyword]:
        """Return the first keyword of this rule that matches, if any."""
        for pattern in self.patterns:
            if pattern.matches(normalized_description):
                return pattern
        return None

    def to_dict(self) -> dict:
        result = {
            'category': self.category,
            'keywords': list(self.keywords),
            'priority': self.priority,
        }
        if self.subcategory:
            result['subcategory'] = self.subcategory
        return result


def _rule(category: str, subcategory: Optional[str], keywords: List[str]) -> KeywordRule:
    return KeywordRule(category=category, subcategory=subcategory, keywords=keywords)


# =============================================================================
# Default Keyword Rules
# Declaration order breaks priority ties: earlier rules win
# =============================================================================

DEFAULT_KEYWORD_RULES: List[KeywordRule] = [
    # =========================================================================
    # FOOD & DINING
    # =========================================================================
    _rule('Food & Dining', 'Groceries', [
        'whole foods', 'trader joes', 'walmart', 'target', 'kroger', 'safeway',
        'costco', 'publix', 'aldi', 'harris teeter', 'food lion', 'market basket',
        'grocery', 'supermarket', 'supermarket*',
    ]),
    _rule('Food & Dining', 'Restaurants', [
        'olive garden', 'red robin', 'cheesecake factory', 'chipotle', 'panera',
        'starbucks', 'mcdonalds', 'burger king', 'wendys', 'taco bell', 'kfc',
        'subway', 'pizza hut', 'domino', 'restaurant', 'diner', 'cafe', 'bistro',
        'grill', 'eatery', 'restaurant*',
    ]),
    _rule('Food & Dining', 'Coffee Shops', [
        'starbucks', 'caribou', 'dunkin', 'coffee bean', 'peet coffee',
        'tim hortons', 'coffee shop', 'cafeteria',
    ]),
    _rule('Food & Dining', 'Fast Food', [
        'mcdonalds', 'burger king', 'wendys', 'taco bell', 'kfc', 'subway',
        'pizza hut', 'domino', 'popeyes', 'chick-fil-a', 'jack in the box',
        'five guys',
    ]),
    _rule('Food & Dining', 'Alcohol & Bars', [
        'bar', 'pub', 'tavern', 'brewery', 'winery', 'liquor store',
    ]),

    # =========================================================================
    # SHOPPING
    # =========================================================================
    _rule('Shopping', 'Clothing', [
        'nike', 'adidas', 'gap', 'old navy', 'banana republic', 'h&m', 'zara',
        'forever 21', 'forever21', 'nordstrom', 'macy', 'kohl', 'jcpenney',
        'bloomingdale', 'saks', 'neiman', 'saks fifth', 'clothing store',
        'apparel', 'fashion',
    ]),
    _rule('Shopping', 'Electronics', [
        'best buy', 'apple', 'apple store', 'microsoft', 'sony', 'samsung',
        'dell', 'hp', 'amazon', 'amazon.com', 'newegg', 'b&h', 'electronics',
        'computer', 'gaming',
    ]),
    _rule('Shopping', 'Home Goods', [
        'home depot', 'lowes', 'bed bath', 'williams sonoma', 'crate barrel',
        'pottery barn', 'ikea', 'target', 'walmart', 'kohl', 'home goods',
        'furniture', 'decor',
    ]),
    _rule('Shopping', 'Personal Care', [
        'sephora', 'ulta', 'cvs', 'walgreens', 'rite aid', 'nordstrom',
        'ulta beauty', 'beauty', 'cosmetics', 'pharmacy',
    ]),

    # =========================================================================
    # ENTERTAINMENT
    # =========================================================================
    _rule('Entertainment', 'Streaming Services', [
        'netflix', 'hulu', 'disney', 'disney+', 'hbo', 'hbo max', 'amazon prime',
        'prime video', 'peacock', 'paramount', 'apple tv', 'youtube',
        'youtube tv', 'spotify', 'apple music', 'pandora', 'sirius', 'siriusxm',
    ]),
    _rule('Entertainment', 'Movies & Events', [
        'amc', 'regal', 'cineplex', 'movie', 'cinema', 'theater',
    ]),
    _rule('Entertainment', 'Travel', [
        'expedia', 'booking', 'airbnb', 'hotels.com', 'marriott', 'hilton',
        'hyatt', 'wyndham', 'delta', 'united', 'american airlines', 'southwest',
        'jetblue', 'alaska air', 'amtrak', 'uber', 'lyft', 'rental car', 'hotel',
        'motel', 'airline', 'flight',
    ]),
    _rule('Entertainment', 'Hobbies', [
        'gaming', 'steam', 'playstation', 'xbox', 'nintendo', 'blizzard',
        'riot games', 'epic games', 'hobby lobby', 'michaels', 'joann',
    ]),
    _rule('Entertainment', 'Sports', [
        'gym', 'fitness', 'yoga', 'pilate', 'crossfit', 'equinox',
    ]),

    # =========================================================================
    # TRANSPORTATION
    # =========================================================================
    _rule('Transportation', None, [
        'shell', 'chevron', 'exxon', 'mobil', 'bp', 'sunoco', 'circle k',
        '7-eleven', 'quiktrip', 'marathon', 'gas station', 'fuel', 'gas', 'uber',
        'lyft', 'taxi', 'parking', 'metro', 'transit', 'amtrak', 'bus', 'subway',
        'train',
    ]),

    # =========================================================================
    # HOUSING
    # =========================================================================
    _rule('Housing', 'Rent', ['rent', 'apartment', 'lease']),
    _rule('Housing', 'Mortgage', [
        'mortgage', 'wells fargo bank', 'bank of america', 'chase bank',
    ]),
    _rule('Housing', 'Utilities', [
        'electric', 'gas', 'water', 'sewer', 'trash', 'waste management',
        'comcast', 'xfinity', 'verizon', 'at&t', 'spectrum', 'utility',
        'utilities',
    ]),
    _rule('Housing', 'Maintenance', [
        'home depot', 'lowes', 'ace hardware', 'true value', 'handyman',
        'plumber', 'electrician', 'contractor',
    ]),
    _rule('Housing', 'Property Tax', [
        'property tax', 'county tax', 'tax collector',
    ]),
    _rule('Housing', 'Home Insurance', [
        'state farm', 'geico', 'progressive', 'allstate', 'usaa',
        'liberty mutual', 'insurance', 'ins',
    ]),

    # =========================================================================
    # HEALTH & WELLNESS
    # =========================================================================
    _rule('Health & Wellness', 'Medical', [
        'hospital', 'clinic', 'medical center', 'doctor', 'physician', 'surgery',
        'urgent care', 'emergency', 'er', 'laboratory', 'lab',
    ]),
    _rule('Health & Wellness', 'Pharmacy', [
        'cvs', 'walgreens', 'rite aid', 'pharmacy', 'drug store', 'prescription',
        'medication',
    ]),
    _rule('Health & Wellness', 'Dental', [
        'dentist', 'dental', 'orthodontist', 'oral surgery',
    ]),
    _rule('Health & Wellness', 'Vision', [
        'optometrist', 'eye doctor', 'vision', 'optical',
    ]),
    _rule('Health & Wellness', 'Health Insurance', [
        'blue cross', 'aetna', 'cigna', 'united healthcare', 'humana', 'kaiser',
        'health insurance', 'medical insurance',
    ]),

    # =========================================================================
    # BILLS & UTILITIES
    # =========================================================================
    _rule('Bills & Utilities', 'Phone', [
        'verizon', 'at&t', 't-mobile', 'sprint', 'mobile', 'cell phone',
        'wireless', 'phone bill',
    ]),
    _rule('Bills & Utilities', 'Internet', [
        'comcast', 'xfinity', 'verizon', 'at&t', 'spectrum', 'internet',
    ]),
    _rule('Bills & Utilities', 'Cable', [
        'comcast', 'xfinity', 'directv', 'dish', 'cable', 'spectrum',
    ]),
    _rule('Bills & Utilities', 'Subscriptions', [
        'subscription', 'membership', 'annual fee', 'monthly fee',
        'prime membership',
    ]),

    # =========================================================================
    # FINANCIAL
    # =========================================================================
    _rule('Financial', 'Credit Card Payment', [
        'credit card payment', 'card payment', 'amex payment', 'visa payment',
        'mastercard payment',
    ]),
    _rule('Financial', 'Investment', [
        'fidelity', 'vanguard', 'charles schwab', 'etrade', 'robinhood',
        'brokerage', 'investment', 'td ameritrade', 'merrill',
    ]),
    _rule('Financial', 'Savings Transfer', [
        'savings transfer', 'transfer to savings', 'deposit savings',
    ]),
    _rule('Financial', 'Bank Fees', [
        'atm fee', 'overdraft', 'bank fee', 'monthly fee', 'service fee',
    ]),

    # =========================================================================
    # EDUCATION
    # =========================================================================
    _rule('Education', 'Tuition', [
        'tuition', 'school', 'university', 'college', 'education',
    ]),
    _rule('Education', 'Books', [
        'amazon', 'bookstore', 'books', 'kindle', 'audible',
    ]),
    _rule('Education', 'Courses', [
        'coursera', 'udemy', 'skillshare', 'linkedin learning', 'pluralsight',
        'course', 'class',
    ]),
    _rule('Education', 'School Supplies', [
        'staples', 'office depot', 'office supplies',
    ]),

    # =========================================================================
    # PETS
    # =========================================================================
    _rule('Pets', 'Food', [
        'petco', 'petsmart', 'chewy', 'pet food', 'pet supplies', 'pet store',
    ]),
    _rule('Pets', 'Veterinary', [
        'vet', 'veterinary', 'animal hospital', 'pet clinic',
    ]),
    _rule('Pets', 'Supplies', [
        'petco', 'petsmart', 'chewy', 'pet supplies', 'animal hospital',
    ]),
    _rule('Pets', 'Grooming', [
        'grooming', 'pet grooming', 'dog grooming',
    ]),

    # =========================================================================
    # INCOME
    # =========================================================================
    _rule('Income', 'Salary', [
        'payroll', 'salary', 'paycheck', 'direct deposit',
    ]),
    _rule('Income', 'Freelance', [
        'freelance', 'contract', 'consulting', 'upwork', 'fiverr', 'guru',
        'freelancer',
    ]),
    _rule('Income', 'Investment Returns', [
        'dividend', 'interest', 'capital gain', 'return of capital',
    ]),
]
