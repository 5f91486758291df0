"""
Preview what a set of rules would do to existing transactions.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from categorizer.matcher import RuleMatcher
from categorizer.models import Rule, as_rule, as_transaction, rule_sort_key
from normalizer.date_parser import format_date
from normalizer.merchant import NormalizationCache

MAX_SAMPLE_MATCHES = 10


@dataclass
class RulePreview:
    """Impact of one rule: how many transactions it would claim and how many already agree."""
    rule: Rule
    total_matches: int = 0
    category_matches: int = 0
    matches: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def accuracy(self) -> float:
        if not self.total_matches:
            return 0.0
        return self.category_matches / self.total_matches

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule': self.rule.to_dict(),
            'total_matches': self.total_matches,
            'category_matches': self.category_matches,
            'accuracy': self.accuracy,
            'matches': list(self.matches),
        }


def preview_rule_impact(
    rules: Sequence[Any],
    transactions: Sequence[Any],
    cache: Optional[NormalizationCache] = None
) -> List[RulePreview]:
    """
    Preview rules against transactions with first-match-wins claiming.

    Args:
        rules: Rules (or their dictionaries) to preview
        transactions: Transactions with their current categories

    Returns:
        One RulePreview per enabled rule, in precedence order. Each lists
        up to MAX_SAMPLE_MATCHES sample matches.
    """
    ordered = sorted((r for r in (as_rule(r) for r in rules) if r.enabled), key=rule_sort_key)
    txns = [as_transaction(t) for t in transactions]
    matcher = RuleMatcher(cache=cache)
    claimed = [t.manual_override for t in txns]

    previews: List[RulePreview] = []
    for rule in ordered:
        preview = RulePreview(rule=rule)
        for i, txn in enumerate(txns):
            if claimed[i] or not matcher.matches(rule, txn):
                continue
            claimed[i] = True
            preview.total_matches += 1
            if txn.category == rule.category:
                preview.category_matches += 1
            if len(preview.matches) < MAX_SAMPLE_MATCHES:
                preview.matches.append({
                    'hash': txn.hash,
                    'name': txn.name,
                    'amount': txn.amount,
                    'date': format_date(txn.date),
                    'current_category': txn.category,
                    'new_category': rule.category,
                    'would_change': txn.category != rule.category,
                })
        previews.append(preview)

    return previews
