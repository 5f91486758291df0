"""
Pattern miner.

Derives candidate rules from a batch of transactions:
1. Token / n-gram frequency in normalized merchant names
2. Store-number patterns ("STARBUCKS #1234")
3. MCC and merchant-ID frequency
4. Recurring payments (same merchant and amount about once a month)
5. Marketplace sub-keywords ("AMZN Kindle")
"""
import hashlib
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import (
    MARKETPLACE_KEYWORDS,
    MARKETPLACE_PATTERNS,
    MIN_FREQUENCY,
    RECURRING_CADENCE_DAYS,
    RECURRING_MIN_CONSISTENCY,
    RECURRING_MIN_OCCURRENCES,
    RECURRING_TOLERANCE_DAYS,
    get_category_name,
)
from categorizer.models import MatchType, Rule, RuleSource, Transaction, as_transaction
from normalizer.merchant import NormalizationCache, strip_punctuation

from .policy import CategoryPolicy

logger = logging.getLogger(__name__)

# Runs on the lower-cased, punctuation-free name: "starbucks 1234", "tim hortons 0456"
STORE_NUMBER_REGEX = re.compile(r'^([a-z]+(?: [a-z]+)*) (\d{2,5})\b')

_MARKETPLACE_REGEXES = {
    name: re.compile(pattern, re.IGNORECASE) for name, pattern in MARKETPLACE_PATTERNS.items()
}


def extract_tokens(normalized: str) -> List[str]:
    """
    Tokens (longer than one character) plus their 2- and 3-grams.

    Args:
        normalized: Normalized merchant text

    Returns:
        Tokens followed by n-grams, in order of appearance
    """
    if not normalized:
        return []

    tokens = [t for t in normalized.split() if len(t) > 1]
    bigrams = [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]
    trigrams = [f"{a} {b} {c}" for a, b, c in zip(tokens, tokens[1:], tokens[2:])]
    return tokens + bigrams + trigrams


def detect_store_brand(name: str, cache: Optional[NormalizationCache] = None) -> Optional[str]:
    """
    Find the brand of a "<brand> #<store number>" merchant name.

    Returns:
        The normalized brand, or None when the name has no store number
    """
    if not name:
        return None
    match = STORE_NUMBER_REGEX.match(strip_punctuation(name))
    if not match:
        return None
    brand = (cache or NormalizationCache()).normalize(match.group(1))
    return brand or None


def store_pattern_regex(brand: str) -> str:
    """Regex matching a brand with or without its store number."""
    return rf'^{re.escape(brand)}(?:\s*#?\d{{2,5}})?\b'


def recurring_consistency(dates: Sequence[date]) -> float:
    """
    Share of gaps between consecutive dates that look monthly.

    A gap is monthly when it is within RECURRING_TOLERANCE_DAYS of
    RECURRING_CADENCE_DAYS.
    """
    ordered = sorted(dates)
    gaps = [(b - a).days for a, b in zip(ordered, ordered[1:])]
    if not gaps:
        return 0.0
    consistent = [g for g in gaps if abs(g - RECURRING_CADENCE_DAYS) <= RECURRING_TOLERANCE_DAYS]
    return len(consistent) / len(gaps)


def candidate_id(source: RuleSource, match_type: MatchType, pattern: str,
                 amount: Optional[float] = None) -> str:
    """Stable id for a mined rule, so re-mining the same data gives the same ids."""
    key = f"{source.value}|{match_type.value}|{pattern}|{'' if amount is None else f'{amount:.2f}'}"
    return f"auto_{source.value}_{hashlib.sha1(key.encode('utf-8')).hexdigest()[:10]}"


@dataclass
class PatternAnalysis:
    """
    Intermediate counts from one pass over the transactions.

    Every map holds indexes into `transactions`, in first-seen order.
    """
    transactions: List[Transaction]
    normalized: List[str] = field(default_factory=list)
    token_frequency: Dict[str, List[int]] = field(default_factory=dict)
    store_patterns: Dict[str, List[int]] = field(default_factory=dict)
    mcc_mappings: Dict[str, List[int]] = field(default_factory=dict)
    merchant_id_mappings: Dict[str, List[int]] = field(default_factory=dict)
    merchant_amounts: Dict[Tuple[str, float], List[int]] = field(default_factory=dict)
    marketplace_keywords: Dict[Tuple[str, str], List[int]] = field(default_factory=dict)

    def supporting(self, indexes: List[int]) -> List[Transaction]:
        return [self.transactions[i] for i in indexes]

    def summary(self) -> Dict[str, int]:
        return {
            'transactions': len(self.transactions),
            'tokens': len(self.token_frequency),
            'store_brands': len(self.store_patterns),
            'mccs': len(self.mcc_mappings),
            'merchant_ids': len(self.merchant_id_mappings),
            'merchant_amounts': len(self.merchant_amounts),
            'marketplace_keywords': len(self.marketplace_keywords),
        }


class PatternMiner:
    """
    Mines candidate rules from transaction history.
    """

    def __init__(self, min_frequency: int = MIN_FREQUENCY, policy: Optional[CategoryPolicy] = None):
        """
        Initialize the miner.

        Args:
            min_frequency: Minimum number of supporting transactions for a
                           frequency, store, MCC or merchant-ID candidate
            policy: Category policy for mined rules
        """
        self.min_frequency = max(1, int(min_frequency))
        self.policy = policy or CategoryPolicy()

    def analyze(self, transactions: Sequence[Any], cache: Optional[NormalizationCache] = None) -> PatternAnalysis:
        """
        Count tokens, store brands, MCCs, merchant IDs, merchant/amount pairs
        and marketplace keywords in one pass.

        Raises:
            TypeError: if transactions is not a list
        """
        if not isinstance(transactions, (list, tuple)):
            raise TypeError(f"transactions must be a list, got {type(transactions).__name__}")

        cache = cache if cache is not None else NormalizationCache()
        txns = [as_transaction(t) for t in transactions]
        analysis = PatternAnalysis(transactions=txns)

        token_frequency: Dict[str, List[int]] = defaultdict(list)
        store_patterns: Dict[str, List[int]] = defaultdict(list)
        mcc_mappings: Dict[str, List[int]] = defaultdict(list)
        merchant_ids: Dict[str, List[int]] = defaultdict(list)
        merchant_amounts: Dict[Tuple[str, float], List[int]] = defaultdict(list)
        marketplace: Dict[Tuple[str, str], List[int]] = defaultdict(list)

        for i, txn in enumerate(txns):
            normalized = cache.normalize(txn.name) or cache.normalize(txn.description)
            analysis.normalized.append(normalized)

            # Each token counts once per transaction
            for token in dict.fromkeys(extract_tokens(normalized)):
                token_frequency[token].append(i)

            brand = detect_store_brand(txn.name, cache)
            if brand:
                store_patterns[brand].append(i)

            if txn.mcc:
                mcc_mappings[txn.mcc].append(i)

            if txn.merchant_id:
                merchant_ids[txn.merchant_id].append(i)

            if normalized:
                merchant_amounts[(normalized, round(txn.abs_amount, 2))].append(i)

            for name, regex in _MARKETPLACE_REGEXES.items():
                if not regex.search(txn.name):
                    continue
                for keyword in MARKETPLACE_KEYWORDS.get(name, {}):
                    if re.search(r'\b' + re.escape(keyword) + r'\b', normalized):
                        marketplace[(name, keyword)].append(i)

        analysis.token_frequency = dict(token_frequency)
        analysis.store_patterns = dict(store_patterns)
        analysis.mcc_mappings = dict(mcc_mappings)
        analysis.merchant_id_mappings = dict(merchant_ids)
        analysis.merchant_amounts = dict(merchant_amounts)
        analysis.marketplace_keywords = dict(marketplace)
        return analysis

    def mine(
        self,
        transactions: Sequence[Any],
        cache: Optional[NormalizationCache] = None,
        now: Optional[datetime] = None
    ) -> List[Rule]:
        """
        Mine candidate rules.

        Args:
            transactions: Transactions (or their dictionaries)
            cache: Normalization memo for this run
            now: Timestamp given to every candidate of this run

        Returns:
            Unscored candidate rules (priority 0, applied=False)
        """
        cache = cache if cache is not None else NormalizationCache()
        analysis = self.analyze(transactions, cache)
        return self.candidates_from(analysis, cache, now)

    def candidates_from(
        self,
        analysis: PatternAnalysis,
        cache: Optional[NormalizationCache] = None,
        now: Optional[datetime] = None
    ) -> List[Rule]:
        """Turn a PatternAnalysis into candidate rules."""
        cache = cache if cache is not None else NormalizationCache()
        now = now or datetime.now(timezone.utc)

        candidates = (
            self._frequency_candidates(analysis, cache, now)
            + self._store_candidates(analysis, cache, now)
            + self._mcc_candidates(analysis, now)
            + self._merchant_id_candidates(analysis, cache, now)
            + self._recurring_candidates(analysis, cache, now)
            + self._marketplace_candidates(analysis, now)
        )
        logger.debug("Mined %d candidates from %d transactions", len(candidates), len(analysis.transactions))
        return candidates

    # -------------------------------------------------------------------------
    # Candidate builders
    # -------------------------------------------------------------------------

    @staticmethod
    def _candidate(
        source: RuleSource,
        match_type: MatchType,
        pattern: str,
        category: str,
        support: int,
        explain: str,
        now: datetime,
        amount: Optional[float] = None,
        confidence: Optional[float] = None
    ) -> Rule:
        return Rule(
            id=candidate_id(source, match_type, pattern, amount),
            match_type=match_type,
            pattern=pattern,
            category=category,
            priority=0,
            enabled=True,
            explain=explain,
            source=source,
            support=support,
            confidence=confidence,
            amount=amount,
            created_at=now,
            updated_at=now,
            applied=False,
        )

    def _frequency_candidates(self, analysis: PatternAnalysis, cache: NormalizationCache,
                              now: datetime) -> List[Rule]:
        rules = []
        for token, indexes in analysis.token_frequency.items():
            if len(indexes) < self.min_frequency:
                continue
            category, confidence = self.policy.choose(token, analysis.supporting(indexes), cache)
            logger.debug("Frequency candidate %r -> %s (%d transactions)", token, category, len(indexes))
            rules.append(self._candidate(
                RuleSource.FREQUENCY_ANALYSIS, MatchType.CONTAINS, token, category, len(indexes),
                f'Auto-generated: "{token}" appears in {len(indexes)} transactions '
                f'-> {get_category_name(category)}',
                now,
                confidence=confidence,
            ))
        return rules

    def _store_candidates(self, analysis: PatternAnalysis, cache: NormalizationCache,
                          now: datetime) -> List[Rule]:
        rules = []
        for brand, indexes in analysis.store_patterns.items():
            if len(indexes) < self.min_frequency:
                continue
            category, confidence = self.policy.choose(brand, analysis.supporting(indexes), cache)
            rules.append(self._candidate(
                RuleSource.STORE_PATTERN, MatchType.REGEX, store_pattern_regex(brand), category,
                len(indexes),
                f"Auto-generated: {brand} store pattern appears {len(indexes)} times "
                f"-> {get_category_name(category)}",
                now,
                confidence=confidence,
            ))
        return rules

    def _mcc_candidates(self, analysis: PatternAnalysis, now: datetime) -> List[Rule]:
        rules = []
        for mcc, indexes in analysis.mcc_mappings.items():
            if len(indexes) < self.min_frequency:
                continue
            category, confidence = self.policy.choose_mcc(mcc, analysis.supporting(indexes))
            rules.append(self._candidate(
                RuleSource.MCC_ANALYSIS, MatchType.MCC, mcc, category, len(indexes),
                f"Auto-generated: MCC {mcc} appears {len(indexes)} times "
                f"-> {get_category_name(category)}",
                now,
                confidence=confidence,
            ))
        return rules

    def _merchant_id_candidates(self, analysis: PatternAnalysis, cache: NormalizationCache,
                                now: datetime) -> List[Rule]:
        rules = []
        for merchant_id, indexes in analysis.merchant_id_mappings.items():
            if len(indexes) < self.min_frequency:
                continue
            category, confidence = self.policy.choose('', analysis.supporting(indexes), cache)
            rules.append(self._candidate(
                RuleSource.MERCHANT_ID_ANALYSIS, MatchType.EXACT, merchant_id, category, len(indexes),
                f"Auto-generated: merchant ID {merchant_id} appears {len(indexes)} times "
                f"-> {get_category_name(category)}",
                now,
                confidence=confidence,
            ))
        return rules

    def _recurring_candidates(self, analysis: PatternAnalysis, cache: NormalizationCache,
                              now: datetime) -> List[Rule]:
        rules = []
        for (merchant, amount), indexes in analysis.merchant_amounts.items():
            supporting = [t for t in analysis.supporting(indexes) if t.date is not None]
            if len(supporting) < RECURRING_MIN_OCCURRENCES:
                continue

            consistency = recurring_consistency([t.date for t in supporting])
            if consistency < RECURRING_MIN_CONSISTENCY:
                logger.debug("Not recurring: %s %.2f (%.0f%% consistent)", merchant, amount, consistency * 100)
                continue

            category = self.policy.guess_recurring(merchant, supporting, cache)
            rules.append(self._candidate(
                RuleSource.RECURRING_ANALYSIS, MatchType.CONTAINS, merchant, category, len(supporting),
                f"Auto-detected: recurring monthly charge of ${amount:.2f} from {merchant}",
                now,
                amount=amount,
                confidence=consistency,
            ))
        return rules

    def _marketplace_candidates(self, analysis: PatternAnalysis, now: datetime) -> List[Rule]:
        rules = []
        for (marketplace, keyword), indexes in analysis.marketplace_keywords.items():
            category = MARKETPLACE_KEYWORDS[marketplace][keyword]
            rules.append(self._candidate(
                RuleSource.MARKETPLACE_ANALYSIS, MatchType.CONTAINS, keyword, category, len(indexes),
                f'Auto-generated: {marketplace} marketplace keyword "{keyword}" '
                f'-> {get_category_name(category)}',
                now,
            ))
        return rules
