"""
Normalizer module for descriptions, dates and amounts.
"""
from .text_normalizer import normalize_description, strip_punctuation, tokenize
from .date_parser import parse_date, is_valid_date, days_between
from .amount_parser import parse_amount, has_valid_amount

__all__ = [
    'normalize_description', 'strip_punctuation', 'tokenize',
    'parse_date', 'is_valid_date', 'days_between',
    'parse_amount', 'has_valid_amount',
]
