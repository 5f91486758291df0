"""
Greedy conflict resolution for candidate rules.
"""
import logging
from dataclasses import replace
from typing import List, Optional, Sequence

from categorizer.matcher import RuleMatcher
from categorizer.models import Rule, Transaction, rule_sort_key

logger = logging.getLogger(__name__)


def resolve_conflicts(
    rules: Sequence[Rule],
    transactions: Sequence[Transaction],
    matcher: Optional[RuleMatcher] = None
) -> List[Rule]:
    """
    Keep only rules that still claim transactions once higher rules have
    claimed theirs.

    Rules are taken in precedence order (the same order rule application
    uses). Each rule claims the unclaimed transactions it matches; rules
    that claim nothing are dropped. Manually overridden transactions are
    never claimed.

    Args:
        rules: Candidate rules
        transactions: The transactions the candidates were mined from
        matcher: Matcher to use (shares its normalization cache)

    Returns:
        Surviving rules, in precedence order, with actual_matches and coverage
    """
    matcher = matcher or RuleMatcher()
    ordered = sorted((r for r in rules if r.enabled), key=rule_sort_key)
    claimable = [not t.manual_override for t in transactions]
    total = len(transactions)

    resolved: List[Rule] = []
    for rule in ordered:
        claimed = 0
        for i, txn in enumerate(transactions):
            if claimable[i] and matcher.matches(rule, txn):
                claimable[i] = False
                claimed += 1

        if not claimed:
            logger.debug("Dropping rule %s (%r): no transactions left to claim", rule.id, rule.pattern)
            continue

        resolved.append(replace(rule, actual_matches=claimed, coverage=claimed / total))

    return resolved
