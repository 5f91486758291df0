"""
Categorizer module for rule-based transaction categorization.
"""
from .models import (
    CategorySource,
    MatchType,
    Rule,
    RuleFormatError,
    RuleScope,
    RuleSource,
    RuleType,
    Transaction,
    rule_sort_key,
)
from .matcher import RuleMatcher, matches
from .pipeline import apply_rules, apply_rules_with_details, reapply_categories

__all__ = [
    'CategorySource', 'MatchType', 'Rule', 'RuleFormatError', 'RuleScope', 'RuleSource',
    'RuleType', 'Transaction', 'rule_sort_key', 'RuleMatcher', 'matches', 'apply_rules',
    'apply_rules_with_details', 'reapply_categories',
]
