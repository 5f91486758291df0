"""
Normalizer module for merchant text, dates and amounts.
"""
from .merchant import NormalizedMerchant, NormalizationCache, normalize_merchant, normalize_text
from .date_parser import parse_date, parse_timestamp
from .amount_parser import parse_amount, parse_flag, has_valid_amount

__all__ = [
    'NormalizedMerchant', 'NormalizationCache', 'normalize_merchant', 'normalize_text',
    'parse_date', 'parse_timestamp', 'parse_amount', 'parse_flag', 'has_valid_amount',
]
