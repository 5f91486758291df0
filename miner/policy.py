"""
Category policy for mined rules.

Mined patterns have no category of their own. When the supporting
transactions are already categorized and mostly agree, their majority
category wins; otherwise the policy guesses one from keywords in the pattern
and in the merchants that support it.
"""
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config import (
    DEFAULT_MCC_CATEGORY,
    KEYWORD_GROUP_CATEGORIES,
    MCC_CATEGORY_MAPPING,
    MIN_CATEGORY_CONFIDENCE,
    get_config,
)
from categorizer.models import Transaction
from normalizer.merchant import NormalizationCache

FALLBACK_CATEGORY = "guilt_free"
LARGE_PURCHASE_CATEGORY = "short_term_savings"
RECURRING_CATEGORY = "fixed_costs"


class CategoryPolicy:
    """
    Picks categories for mined rules: majority vote over existing
    categories, then keyword groups.

    Replace or subclass this to change how mined rules are categorized.
    """

    def __init__(
        self,
        keyword_groups: Optional[Dict[str, List[str]]] = None,
        group_categories: Optional[Dict[str, str]] = None,
        large_amount_threshold: Optional[float] = None,
        mcc_categories: Optional[Dict[str, str]] = None,
        min_confidence: float = MIN_CATEGORY_CONFIDENCE
    ):
        """
        Initialize the policy.

        Args:
            keyword_groups: Group name -> keywords (default: configured groups)
            group_categories: Group name -> category
            large_amount_threshold: Absolute amount above which unmatched
                                    spending counts as short-term savings
            mcc_categories: MCC -> category table
            min_confidence: Share of the categorized supporting transactions
                            that must agree before their category is used
        """
        config = get_config()
        self.keyword_groups = keyword_groups if keyword_groups is not None else config.keyword_groups
        self.group_categories = group_categories or dict(KEYWORD_GROUP_CATEGORIES)
        self.large_amount_threshold = (
            large_amount_threshold if large_amount_threshold is not None
            else float(config.get("large_amount_threshold"))
        )
        self.mcc_categories = mcc_categories if mcc_categories is not None else MCC_CATEGORY_MAPPING
        self.min_confidence = min_confidence

        # Groups are checked in this order; the first hit wins
        self._group_patterns = [
            (group, re.compile(r'\b(?:' + '|'.join(re.escape(w) for w in words) + r')\b'))
            for group, words in self.keyword_groups.items()
            if words and group in self.group_categories
        ]

    def vote(self, transactions: Sequence[Transaction]) -> Optional[Tuple[str, float]]:
        """
        Majority category of the already-categorized transactions.

        Returns:
            (category, confidence), or None when nothing is categorized or
            the top category's share is below min_confidence
        """
        counts = Counter(t.category for t in transactions if t.category)
        if not counts:
            return None
        category, top = counts.most_common(1)[0]
        confidence = top / sum(counts.values())
        if confidence < self.min_confidence:
            return None
        return category, confidence

    def keyword_category(self, texts: Iterable[str]) -> Optional[str]:
        """Category of the first keyword group found in any of the texts, or None."""
        texts = [t for t in texts if t]
        for group, pattern in self._group_patterns:
            if any(pattern.search(text) for text in texts):
                return self.group_categories[group]
        return None

    def _keyword_hit(self, pattern: str, transactions: Sequence[Transaction],
                     cache: Optional[NormalizationCache]) -> Optional[str]:
        cache = cache or NormalizationCache()
        category = self.keyword_category([cache.normalize(pattern)])
        if category:
            return category
        return self.keyword_category(cache.normalize(t.name) or cache.normalize(t.description)
                                     for t in transactions)

    def guess(
        self,
        pattern: str,
        transactions: Sequence[Transaction],
        cache: Optional[NormalizationCache] = None
    ) -> str:
        """
        Guess the category for a mined pattern.

        Args:
            pattern: The mined pattern
            transactions: Transactions supporting the pattern
            cache: Normalization memo of the mining run

        Returns:
            Category key
        """
        category = self._keyword_hit(pattern, transactions, cache)
        if category:
            return category
        if any(t.abs_amount > self.large_amount_threshold for t in transactions):
            return LARGE_PURCHASE_CATEGORY
        return FALLBACK_CATEGORY

    def choose(
        self,
        pattern: str,
        transactions: Sequence[Transaction],
        cache: Optional[NormalizationCache] = None
    ) -> Tuple[str, Optional[float]]:
        """Voted category and its confidence, else the guessed category with no confidence."""
        voted = self.vote(transactions)
        if voted:
            return voted
        return self.guess(pattern, transactions, cache), None

    def guess_recurring(
        self,
        pattern: str,
        transactions: Sequence[Transaction],
        cache: Optional[NormalizationCache] = None
    ) -> str:
        """Category for a recurring payment: keyword hit, else fixed costs."""
        return self._keyword_hit(pattern, transactions, cache) or RECURRING_CATEGORY

    def mcc_category(self, mcc: str) -> str:
        return self.mcc_categories.get(str(mcc), DEFAULT_MCC_CATEGORY)

    def choose_mcc(self, mcc: str, transactions: Sequence[Transaction]) -> Tuple[str, Optional[float]]:
        """Known MCC bucket first, then the vote, then the default MCC bucket."""
        if str(mcc) in self.mcc_categories:
            return self.mcc_categories[str(mcc)], None
        return self.vote(transactions) or (DEFAULT_MCC_CATEGORY, None)
