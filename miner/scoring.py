"""
Priority scoring for mined rules.

Deterministic additive score: more specific match types, better supported
and longer patterns, and more reliable sources rank higher.
"""
from dataclasses import replace
from typing import Dict, List, Sequence

from config import EXCEPTION_RULE_PRIORITY
from categorizer.models import MatchType, Rule, RuleSource

BASE_SCORE = 50
AUTHORITATIVE_BONUS = 100

MATCH_TYPE_BONUS: Dict[MatchType, int] = {
    MatchType.EXACT: 50,
    MatchType.MCC: 40,
    MatchType.REGEX: 30,
    MatchType.CONTAINS: 10,
}

SOURCE_BONUS: Dict[RuleSource, int] = {
    RuleSource.MCC_ANALYSIS: 25,
    RuleSource.MERCHANT_ID_ANALYSIS: 20,
    RuleSource.STORE_PATTERN: 15,
    RuleSource.RECURRING_ANALYSIS: 10,
    RuleSource.MARKETPLACE_ANALYSIS: 5,
}


class PriorityScorer:
    """
    Computes rule priorities.

    Scoring is side-effect free: score_all returns new rules and scoring a
    scored rule again gives the same priority.
    """

    def score(self, rule: Rule) -> int:
        """
        Score a single rule.

        Args:
            rule: Rule to score

        Returns:
            The rule's priority (exception rules are always EXCEPTION_RULE_PRIORITY)
        """
        if rule.source == RuleSource.EXCEPTION_ANALYSIS:
            return EXCEPTION_RULE_PRIORITY

        score = BASE_SCORE
        score += MATCH_TYPE_BONUS.get(rule.match_type, 0)
        score += min(rule.support * 2, 20)
        score += min(len(rule.pattern) * 2, 30)
        if rule.match_type == MatchType.CONTAINS:
            score += min(len(rule.pattern.split()) * 5, 25)
        score += SOURCE_BONUS.get(rule.source, 0)

        if rule.source.is_authoritative:
            score += AUTHORITATIVE_BONUS

        return int(round(score))

    def score_all(self, rules: Sequence[Rule]) -> List[Rule]:
        """Copies of the rules with their priority set to their score."""
        return [replace(rule, priority=self.score(rule)) for rule in rules]
