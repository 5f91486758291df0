"""
Exception rules for conflicting mined patterns.

When the same `contains` pattern was mined with different categories,
each conflicting rule is cloned at a fixed high priority so that conflict
resolution settles the collision the same way every time.
"""
import logging
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Sequence

from config import EXCEPTION_RULE_PRIORITY
from categorizer.models import MatchType, Rule, RuleSource

logger = logging.getLogger(__name__)

EXCEPTION_ID_SUFFIX = ":exception"


def make_exception(rule: Rule) -> Rule:
    """Exception variant of a rule."""
    return replace(
        rule,
        id=f"{rule.id}{EXCEPTION_ID_SUFFIX}",
        source=RuleSource.EXCEPTION_ANALYSIS,
        exception_of=rule.source,
        priority=EXCEPTION_RULE_PRIORITY,
        explain=f"Auto-generated exception: {rule.explain} (conflict resolution)",
    )


def generate_exception_rules(rules: Sequence[Rule]) -> List[Rule]:
    """
    Clone rules whose contains-pattern was mined with more than one category.

    Args:
        rules: Scored candidate rules, in precedence order

    Returns:
        Exception rules (priority EXCEPTION_RULE_PRIORITY), in input order
    """
    groups: Dict[str, List[Rule]] = defaultdict(list)
    for rule in rules:
        if rule.match_type == MatchType.CONTAINS and rule.source != RuleSource.EXCEPTION_ANALYSIS:
            groups[rule.pattern.lower()].append(rule)

    exceptions: List[Rule] = []
    for pattern, group in groups.items():
        categories = {r.category for r in group}
        if len(categories) < 2:
            continue
        logger.debug("Pattern %r mined with %d categories: %s", pattern, len(categories), sorted(categories))
        exceptions.extend(make_exception(r) for r in group)

    return exceptions
