"""
Rule application pipeline.

Applies an ordered rule set to a batch of transactions: the first matching
rule (by priority, then recency, then input order) categorizes a
transaction, and manually categorized transactions are left alone.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from normalizer.merchant import NormalizationCache

from .matcher import RuleMatcher
from .models import (
    CategorySource,
    Rule,
    RuleType,
    Transaction,
    as_rule,
    as_transaction,
    merge_labels,
    rule_sort_key,
)

logger = logging.getLogger(__name__)

NO_MATCH_EXPLAIN = "No match"
DEFAULT_RULE_EXPLAIN = "Rule match"


@dataclass
class ApplicationDetails:
    """Result of applying rules with per-rule bookkeeping."""
    transactions: List[Transaction]
    rule_matches: Dict[str, List[str]] = field(default_factory=dict)  # rule id -> hashes
    covered: List[str] = field(default_factory=list)

    @property
    def uncovered(self) -> List[Transaction]:
        return [t for t in self.transactions if t.category_source == CategorySource.NONE]


def _require_list(value: Any, name: str) -> None:
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"{name} must be a list, got {type(value).__name__}")


def sort_rules(rules: Sequence[Any]) -> List[Rule]:
    """
    Enabled rules in precedence order.

    Stable sort on (priority desc, most recent timestamp desc); ties keep
    their input order.
    """
    parsed = [as_rule(r) for r in rules]
    return sorted((r for r in parsed if r.enabled), key=rule_sort_key)


def categorize_with_rule(transaction: Transaction, rule: Rule) -> Transaction:
    """Copy of the transaction categorized by the given rule."""
    return replace(
        transaction,
        category=rule.category,
        labels=merge_labels(transaction.labels, rule.labels),
        category_source=CategorySource.RULE,
        category_explain=rule.explain or DEFAULT_RULE_EXPLAIN,
        rule_id=rule.id,
        rule_type=rule.rule_type,
    )


def mark_uncategorized(transaction: Transaction) -> Transaction:
    """Copy of the transaction with its rule categorization cleared (labels kept)."""
    return replace(
        transaction,
        labels=list(transaction.labels),
        category=None,
        category_source=CategorySource.NONE,
        category_explain=NO_MATCH_EXPLAIN,
        rule_id=None,
        rule_type=RuleType.NONE,
    )


def apply_rules_with_details(
    transactions: Sequence[Any],
    rules: Sequence[Any],
    accounts: Optional[Mapping[str, str]] = None,
    cache: Optional[NormalizationCache] = None
) -> ApplicationDetails:
    """
    Apply rules and report which transactions each rule claimed.

    Args:
        transactions: Transactions (or their dictionaries), in input order
        rules: Rules (or their dictionaries), any order
        accounts: Optional account id -> name map for scope resolution
        cache: Normalization memo; a fresh one per call if omitted

    Returns:
        ApplicationDetails with the categorized transactions, rule id ->
        claimed hashes, and the hashes of all claimed transactions

    Raises:
        TypeError: if transactions or rules is not a list
    """
    _require_list(transactions, "transactions")
    _require_list(rules, "rules")

    ordered = sort_rules(rules)
    matcher = RuleMatcher(cache=cache, accounts=accounts)

    details = ApplicationDetails(transactions=[], rule_matches={r.id: [] for r in ordered})

    for txn in (as_transaction(t) for t in transactions):
        if txn.manual_override:
            details.transactions.append(replace(txn, labels=list(txn.labels)))
            continue

        claimed_by = next((r for r in ordered if matcher.matches(r, txn)), None)
        if claimed_by is None:
            details.transactions.append(mark_uncategorized(txn))
            continue

        details.transactions.append(categorize_with_rule(txn, claimed_by))
        details.rule_matches[claimed_by.id].append(txn.hash)
        details.covered.append(txn.hash)

    return details


def apply_rules(
    transactions: Sequence[Any],
    rules: Sequence[Any],
    accounts: Optional[Mapping[str, str]] = None,
    cache: Optional[NormalizationCache] = None
) -> List[Transaction]:
    """
    Apply rules to transactions, first match wins.

    Args:
        transactions: Transactions (or their dictionaries)
        rules: Rules (or their dictionaries)
        accounts: Optional account id -> name map for scope resolution
        cache: Normalization memo; a fresh one per call if omitted

    Returns:
        New Transaction objects in input order. Manual overrides pass
        through unchanged; unmatched transactions are uncategorized.
    """
    return apply_rules_with_details(transactions, rules, accounts=accounts, cache=cache).transactions


def transactions_for_rule(
    rule: Any,
    transactions: Sequence[Any],
    cache: Optional[NormalizationCache] = None
) -> List[Transaction]:
    """All transactions a single rule matches, ignoring every other rule."""
    _require_list(transactions, "transactions")
    rule = as_rule(rule)
    matcher = RuleMatcher(cache=cache)
    return [t for t in (as_transaction(t) for t in transactions) if matcher.matches(rule, t)]


def unmatched_transactions(
    transactions: Sequence[Any],
    rules: Sequence[Any],
    cache: Optional[NormalizationCache] = None
) -> List[Transaction]:
    """Transactions (as given) that no enabled rule matches."""
    _require_list(transactions, "transactions")
    _require_list(rules, "rules")
    ordered = sort_rules(rules)
    matcher = RuleMatcher(cache=cache)
    parsed = [as_transaction(t) for t in transactions]
    return [t for t in parsed if not any(matcher.matches(r, t) for r in ordered)]


def reapply_categories(
    transactions: Sequence[Any],
    rules: Sequence[Any],
    accounts: Optional[Mapping[str, str]] = None
) -> Tuple[List[Transaction], Dict[str, int]]:
    """
    Re-run rule application over an existing set of transactions.

    Manual overrides are kept. Running this twice with the same rules
    changes nothing the second time.

    Returns:
        Tuple of (transactions, {'updated': n, 'total': n}) where updated
        counts transactions whose category, rule or labels changed
    """
    _require_list(transactions, "transactions")
    before = [as_transaction(t) for t in transactions]
    after = apply_rules(before, rules, accounts=accounts)

    updated = sum(
        1 for old, new in zip(before, after)
        if (old.category, old.rule_id, old.labels) != (new.category, new.rule_id, new.labels)
    )
    logger.info("Re-applied %d rules: %d of %d transactions updated", len(rules), updated, len(after))
    return after, {'updated': updated, 'total': len(after)}
