"""
Rule sets: system defaults, user-created rules and accepted mined rules.

System rules ship as a read-only YAML file and sit at the bottom of the
priority order. User rules are created above every mined rule. Mined
candidates become active once accepted.
"""
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml

from config import SYSTEM_RULE_PRIORITY_CEILING, USER_RULE_PRIORITY_FLOOR, get_config
from normalizer.date_parser import EPOCH

from .models import MatchType, Rule, RuleFormatError, RuleScope, RuleSource, as_rule

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_RULES_PATH = Path(__file__).parent / "system_rules.yaml"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# System rules
# =============================================================================

def load_system_rules(path: Optional[Union[str, Path]] = None) -> List[Rule]:
    """
    Load the read-only system rules.

    The file holds a mapping with a 'rules' list. Every rule is tagged as a
    system rule, its priority is capped below mined rules, and missing
    timestamps default to the epoch. Malformed entries are skipped.

    Args:
        path: YAML file to read (default: configured system rules path)

    Returns:
        List of system rules, empty if the file is missing or unreadable
    """
    if path is None:
        path = get_config().get("system_rules_path") or DEFAULT_SYSTEM_RULES_PATH
    path = Path(path)

    if not path.exists():
        logger.warning("System rules file not found at %s", path)
        return []

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error loading system rules from %s: %s", path, e)
        return []

    entries = data.get('rules') if isinstance(data, dict) else None
    if not isinstance(entries, list):
        logger.warning("Invalid system rules file %s, expected {rules: [...]}", path)
        return []

    rules: List[Rule] = []
    for i, entry in enumerate(entries):
        try:
            rule = Rule.from_dict(entry)
        except (RuleFormatError, TypeError, ValueError) as e:
            logger.warning("Skipping system rule #%d in %s: %s", i, path, e)
            continue

        rules.append(replace(
            rule,
            id=rule.id or f"system_{i}",
            source=RuleSource.SYSTEM,
            priority=min(rule.priority, SYSTEM_RULE_PRIORITY_CEILING),
            created_at=rule.created_at or EPOCH,
            updated_at=rule.updated_at or EPOCH,
        ))

    logger.debug("Loaded %d system rules from %s", len(rules), path)
    return rules


def load_rules_file(path: Union[str, Path]) -> List[Rule]:
    """
    Load a rule document (YAML or JSON, which YAML reads too).

    Accepts either a bare list of rules or a mapping with a 'rules' list.

    Raises:
        RuleFormatError: if the document or any rule in it is malformed
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get('rules', [])
    if not isinstance(data, list):
        raise RuleFormatError(f"{path}: expected a list of rules")

    return [Rule.from_dict(entry) for entry in data]


# =============================================================================
# User rules
# =============================================================================

def next_user_priority(existing: Iterable[Any]) -> int:
    """Priority for a new user rule: above every existing user rule and never below the floor."""
    priorities = [
        as_rule(r).priority for r in existing
        if as_rule(r).source == RuleSource.USER_CREATED
    ]
    return max([USER_RULE_PRIORITY_FLOOR] + priorities) + 1


def create_user_rule(
    existing: Sequence[Any],
    *,
    category: str,
    pattern: str,
    match_type: Union[MatchType, str] = MatchType.CONTAINS,
    explain: str = "",
    labels: Optional[List[str]] = None,
    scope: Optional[RuleScope] = None,
    now: Optional[datetime] = None
) -> Rule:
    """
    Create a new user rule ranked above all existing user rules.

    Args:
        existing: Current user rules, used to pick the priority
        category: Category to assign
        pattern: Match pattern
        match_type: How the pattern is matched
        explain: Human readable explanation
        labels: Labels added to matched transactions
        scope: Optional scope constraints
        now: Creation time (default: current UTC time)

    Returns:
        The new rule (not added to existing)
    """
    if not category:
        raise RuleFormatError("User rule needs a category")

    now = now or _utcnow()
    return Rule(
        id=f"rule_{uuid.uuid4().hex}",
        match_type=MatchType(match_type),
        pattern=pattern,
        category=category,
        priority=next_user_priority(existing),
        enabled=True,
        scope=scope or RuleScope(),
        labels=list(labels or []),
        explain=explain or f"User rule: {pattern}",
        source=RuleSource.USER_CREATED,
        created_at=now,
        updated_at=now,
    )


def update_user_rule(rule: Rule, changes: Dict[str, Any], now: Optional[datetime] = None) -> Rule:
    """
    Apply edits to a rule and bump its updated_at.

    Args:
        rule: Rule to edit
        changes: Fields to change, in wire form (e.g. {'category': 'investments'})
        now: Edit time (default: current UTC time)

    Raises:
        RuleFormatError: if the edited rule is malformed
    """
    data = rule.to_dict()
    data.update(changes)
    data['id'] = rule.id
    data['updated_at'] = (now or _utcnow()).isoformat()
    return Rule.from_dict(data)


def toggle_rule(rule: Rule, enabled: Optional[bool] = None, now: Optional[datetime] = None) -> Rule:
    """Enable or disable a rule (flip it when enabled is None)."""
    new_state = (not rule.enabled) if enabled is None else enabled
    return replace(rule, enabled=new_state, updated_at=now or _utcnow())


def promote_candidate(
    candidate: Rule,
    existing: Sequence[Any],
    category: Optional[str] = None,
    now: Optional[datetime] = None
) -> Rule:
    """
    Turn a mined candidate into a user rule.

    The user rule keeps the candidate's pattern, match type, scope and
    labels, optionally with a corrected category.
    """
    rule = create_user_rule(
        existing,
        category=category or candidate.category,
        pattern=candidate.pattern,
        match_type=candidate.match_type,
        explain=candidate.explain,
        labels=candidate.labels,
        scope=candidate.scope,
        now=now,
    )
    if candidate.pins_amount:
        rule = replace(rule, amount=candidate.amount)
    return rule


def accept_candidates(
    candidates: Sequence[Rule],
    rule_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None
) -> List[Rule]:
    """
    Mark mined candidates as accepted.

    Args:
        candidates: Candidate rules from a mining run
        rule_ids: Ids to accept (default: all candidates)
        now: Acceptance time (default: current UTC time)

    Returns:
        The accepted rules, with applied=True
    """
    now = now or _utcnow()
    wanted = None if rule_ids is None else set(rule_ids)
    accepted = [
        replace(c, applied=True, updated_at=now)
        for c in candidates
        if wanted is None or c.id in wanted
    ]
    logger.info("Accepted %d of %d candidate rules", len(accepted), len(candidates))
    return accepted


def build_rule_set(
    user_rules: Sequence[Any] = (),
    accepted_rules: Sequence[Any] = (),
    system_rules: Sequence[Any] = ()
) -> List[Rule]:
    """
    Combine the rule tiers into one list for application.

    Order in the list does not decide precedence (priority does); it only
    breaks exact ties.
    """
    return [as_rule(r) for r in list(user_rules) + list(accepted_rules) + list(system_rules)]
