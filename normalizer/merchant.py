"""
Merchant text normalizer.

Bank exports spell the same merchant many ways ("STARBUCKS #1234",
"Starbucks Coffee 0456 VISA DEBIT"). Rules and mined patterns are compared
against a normalized form that strips the variable parts of the text.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

# =============================================================================
# Variable tokens
# =============================================================================

# Punctuation is replaced by spaces before these run, so "ref#123" is
# "ref 123", "(416) 555-0199" is "416 555 0199" and "$12.50" is "12 50".
REFERENCE_PATTERN = re.compile(r'\bref\s*\d+\b')
PHONE_PATTERN = re.compile(r'\b\d{3}\s\d{3}\s\d{4}\b')
DATE_PATTERNS = [
    re.compile(r'\b\d{4}\s\d{1,2}\s\d{1,2}\b'),       # 2024-01-15
    re.compile(r'\b\d{1,2}\s\d{1,2}\s\d{2,4}\b'),     # 01/15/2024
]
AMOUNT_PATTERN = re.compile(r'\b\d+\s\d{2}\b')
STORE_NUMBER_PATTERN = re.compile(r'\d{2,}')

PAYMENT_RAIL_NOISE: List[str] = [
    'visa debit', 'interac', 'pos', 'purchase', 'debit', 'credit',
    'atm', 'cash withdrawal', 'online banking', 'mobile payment',
]

BRAND_CANONICALIZATION: Dict[str, str] = {
    'mcdonald s': 'mcdonalds',
    'costco wholesale': 'costco',
    'walmart supercenter': 'walmart',
    'target corporation': 'target',
    'home depot': 'homedepot',
    'lowes companies': 'lowes',
    'starbucks coffee': 'starbucks',
    'tim hortons': 'timhortons',
    'subway restaurants': 'subway',
}

_NOISE_PATTERNS = [re.compile(r'\b' + re.escape(noise) + r'\b') for noise in PAYMENT_RAIL_NOISE]
_BRAND_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r'\b' + re.escape(variant) + r'\b'), canonical)
    for variant, canonical in BRAND_CANONICALIZATION.items()
]


@dataclass(frozen=True)
class NormalizedMerchant:
    """A raw merchant string and its normalized form."""
    raw: str
    normalized: str


def _collapse(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()


def strip_punctuation(value: str) -> str:
    """
    Lowercase a string and replace punctuation with single spaces.

    This is the form store-number detection works on, since the digits
    are still present.
    """
    return _collapse(re.sub(r'[^\w\s]', ' ', value.lower()))


def _normalize_once(text: str) -> str:
    text = strip_punctuation(text)

    text = REFERENCE_PATTERN.sub(' ', text)
    text = PHONE_PATTERN.sub(' ', text)
    for pattern in DATE_PATTERNS:
        text = pattern.sub(' ', text)
    text = AMOUNT_PATTERN.sub(' ', text)
    text = STORE_NUMBER_PATTERN.sub(' ', text)

    for pattern in _NOISE_PATTERNS:
        text = pattern.sub(' ', text)
    text = _collapse(text)

    for pattern, canonical in _BRAND_PATTERNS:
        text = pattern.sub(canonical, text)

    return _collapse(text)


def normalize_text(value: Any) -> str:
    """
    Normalize merchant text for matching.

    Returns '' for None, empty or non-string input. The cleanup pass is
    repeated until the text stops changing, so normalize_text(normalize_text(x))
    == normalize_text(x).
    """
    if not isinstance(value, str):
        return ''

    text = value.strip()
    if not text:
        return ''

    previous = None
    while text != previous:
        previous = text
        text = _normalize_once(text)
    return text


def normalize_merchant(value: Any) -> NormalizedMerchant:
    """
    Normalize a merchant string.

    Args:
        value: Raw merchant name or description

    Returns:
        NormalizedMerchant with the trimmed raw text and its normalized form
    """
    raw = value.strip() if isinstance(value, str) else ''
    return NormalizedMerchant(raw=raw, normalized=normalize_text(raw))


class NormalizationCache:
    """
    Memo of normalized text keyed by the raw string.

    Owned by whoever runs a batch (rule application or mining); one cache
    lives for one batch and is then thrown away.
    """

    def __init__(self):
        self._memo: Dict[str, str] = {}

    def normalize(self, value: Any) -> str:
        if not isinstance(value, str):
            return ''
        cached = self._memo.get(value)
        if cached is None:
            cached = normalize_text(value)
            self._memo[value] = cached
        return cached

    def __len__(self) -> int:
        return len(self._memo)
