"""
Manual category overrides.

A manual override pins a transaction's category. Rule application never
touches an overridden transaction.
"""
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import yaml

from .models import CategorySource, RuleType, Transaction, as_transaction, merge_labels

logger = logging.getLogger(__name__)

MANUAL_EXPLAIN = "Manual override"


def set_manual_category(
    transaction: Any,
    category: str,
    labels: Optional[List[str]] = None,
    explain: Optional[str] = None
) -> Transaction:
    """
    Manually categorize a single transaction.

    Args:
        transaction: Transaction (or its dictionary)
        category: Category chosen by the user
        labels: Extra labels to add
        explain: Optional note (default: "Manual override")

    Returns:
        A new Transaction marked as manually overridden
    """
    txn = as_transaction(transaction)
    return replace(
        txn,
        category=category,
        labels=merge_labels(txn.labels, labels or []),
        category_source=CategorySource.MANUAL,
        category_explain=explain or MANUAL_EXPLAIN,
        manual_override=True,
        rule_id=None,
        rule_type=RuleType.MANUAL_OVERRIDE,
    )


def apply_manual_overrides(
    transactions: Sequence[Any],
    overrides: Mapping[str, str]
) -> List[Transaction]:
    """
    Apply a hash -> category override map to a batch of transactions.

    Transactions without an entry pass through unchanged.

    Raises:
        TypeError: if transactions is not a list
    """
    if not isinstance(transactions, (list, tuple)):
        raise TypeError(f"transactions must be a list, got {type(transactions).__name__}")

    result: List[Transaction] = []
    applied = 0
    for txn in (as_transaction(t) for t in transactions):
        category = overrides.get(txn.hash)
        if category:
            txn = set_manual_category(txn, category)
            applied += 1
        result.append(txn)

    if applied:
        logger.info("Applied %d manual overrides", applied)
    return result


def load_manual_overrides(path: Union[str, Path]) -> Dict[str, str]:
    """
    Load a manual override file ({overrides: {hash: category}}).

    A missing or malformed file yields no overrides.
    """
    path = Path(path)
    if not path.exists():
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error loading manual overrides from %s: %s", path, e)
        return {}

    overrides = data.get('overrides') if isinstance(data, dict) else None
    if not isinstance(overrides, dict):
        logger.warning("Invalid manual overrides file %s, expected {overrides: {...}}", path)
        return {}

    return {str(k): str(v) for k, v in overrides.items() if v}
