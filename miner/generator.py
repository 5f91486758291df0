"""
Auto rule generation.

Runs the mining pipeline: pattern mining -> priority scoring -> exception
rules -> conflict resolution, and caps the number of candidates returned.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from config import MAX_RULES_PER_IMPORT, MIN_FREQUENCY, get_config
from categorizer.matcher import RuleMatcher
from categorizer.models import Rule, RuleSource, as_transaction, rule_sort_key
from normalizer.merchant import NormalizationCache

from .conflicts import resolve_conflicts
from .exception_rules import generate_exception_rules
from .patterns import PatternAnalysis, PatternMiner
from .policy import CategoryPolicy
from .scoring import PriorityScorer

logger = logging.getLogger(__name__)


@dataclass
class MiningResult:
    """Candidate rules from a mining run, with the analysis behind them."""
    rules: List[Rule] = field(default_factory=list)
    analysis: Optional[PatternAnalysis] = None
    stats: Dict[str, int] = field(default_factory=dict)


def _source_counts(rules: Sequence[Rule]) -> Dict[str, int]:
    counts = {
        'frequency_rules': RuleSource.FREQUENCY_ANALYSIS,
        'store_rules': RuleSource.STORE_PATTERN,
        'mcc_rules': RuleSource.MCC_ANALYSIS,
        'merchant_id_rules': RuleSource.MERCHANT_ID_ANALYSIS,
        'recurring_rules': RuleSource.RECURRING_ANALYSIS,
        'marketplace_rules': RuleSource.MARKETPLACE_ANALYSIS,
    }
    return {key: sum(1 for r in rules if r.source == source) for key, source in counts.items()}


class AutoRuleGenerator:
    """
    Generates candidate rules from transaction history.

    The candidates it returns reproduce their coverage exactly when applied
    back to the same transactions.
    """

    def __init__(
        self,
        min_frequency: Optional[int] = None,
        max_rules: Optional[int] = None,
        policy: Optional[CategoryPolicy] = None,
        scorer: Optional[PriorityScorer] = None
    ):
        """
        Initialize the generator.

        Args:
            min_frequency: Minimum support for frequency-based candidates
                           (default from configuration)
            max_rules: Maximum candidates returned per run
            policy: Category policy for mined rules
            scorer: Priority scorer
        """
        config = get_config()
        self.min_frequency = int(min_frequency if min_frequency is not None
                                 else config.get("min_frequency", MIN_FREQUENCY))
        self.max_rules = int(max_rules if max_rules is not None
                             else config.get("max_rules_per_import", MAX_RULES_PER_IMPORT))
        self.miner = PatternMiner(min_frequency=self.min_frequency, policy=policy)
        self.scorer = scorer or PriorityScorer()

    def generate(self, transactions: Sequence[Any], now: Optional[datetime] = None) -> MiningResult:
        """
        Mine, score, add exceptions, resolve conflicts and cap.

        Args:
            transactions: Transactions (or their dictionaries)
            now: Timestamp for every candidate of this run

        Returns:
            MiningResult; empty when there are no transactions

        Raises:
            TypeError: if transactions is not a list
        """
        if not isinstance(transactions, (list, tuple)):
            raise TypeError(f"transactions must be a list, got {type(transactions).__name__}")

        if not transactions:
            logger.info("No transactions provided for rule mining")
            return MiningResult(stats={'total_transactions': 0, 'rules_generated': 0})

        txns = [as_transaction(t) for t in transactions]
        logger.info("Mining rules from %d transactions (min frequency %d)", len(txns), self.min_frequency)

        cache = NormalizationCache()
        analysis = self.miner.analyze(txns, cache)
        mined = self.miner.candidates_from(analysis, cache, now)

        scored = sorted(self.scorer.score_all(mined), key=rule_sort_key)
        exceptions = generate_exception_rules(scored)
        ranked = sorted(scored + exceptions, key=rule_sort_key)

        resolved = resolve_conflicts(ranked, txns, RuleMatcher(cache=cache))
        rules = resolved[:self.max_rules]

        stats = {
            'total_transactions': len(txns),
            'candidates_mined': len(mined),
            'rules_generated': len(rules),
            'exception_rules': len(exceptions),
            'discarded_rules': len(ranked) - len(resolved),
            'covered_transactions': sum(r.actual_matches for r in rules),
        }
        stats.update(_source_counts(mined))

        logger.info(
            "Generated %d candidate rules (%d mined, %d exceptions, %d discarded)",
            stats['rules_generated'], stats['candidates_mined'], stats['exception_rules'],
            stats['discarded_rules'],
        )
        for rule in rules[:5]:
            logger.debug(
                "  %s %r -> %s (priority %d, %d matches, %.0f%% coverage)",
                rule.match_type.value, rule.pattern, rule.category, rule.priority,
                rule.actual_matches, rule.coverage * 100,
            )

        return MiningResult(rules=rules, analysis=analysis, stats=stats)


def mine_rules(
    transactions: Sequence[Any],
    min_frequency: Optional[int] = None,
    now: Optional[datetime] = None
) -> List[Rule]:
    """
    Mine candidate rules from transactions.

    Args:
        transactions: Transactions (or their dictionaries)
        min_frequency: Minimum support for frequency-based candidates
        now: Timestamp for every candidate of this run

    Returns:
        Candidate rules in precedence order
    """
    return AutoRuleGenerator(min_frequency=min_frequency).generate(transactions, now=now).rules
