"""
Rule mining: discover candidate categorization rules from transaction history.
"""
from .conflicts import resolve_conflicts
from .exception_rules import generate_exception_rules
from .generator import AutoRuleGenerator, MiningResult, mine_rules
from .patterns import PatternAnalysis, PatternMiner
from .policy import CategoryPolicy
from .preview import RulePreview, preview_rule_impact
from .scoring import PriorityScorer

__all__ = [
    'AutoRuleGenerator', 'MiningResult', 'mine_rules', 'PatternAnalysis', 'PatternMiner',
    'CategoryPolicy', 'PriorityScorer', 'generate_exception_rules', 'resolve_conflicts',
    'RulePreview', 'preview_rule_impact',
]
