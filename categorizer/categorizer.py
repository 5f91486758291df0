"""
Main categorization orchestrator.

Combines manual overrides, transfer labelling and the three rule tiers
(user rules, accepted mined rules, system rules) into one categorization
pass, and keeps statistics about where categories came from.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from config import get_category_name, get_config
from categorizer.models import Rule, RuleType, Transaction, as_rule, as_transaction
from categorizer.overrides import apply_manual_overrides
from categorizer.pipeline import apply_rules, reapply_categories
from categorizer.rules import build_rule_set, load_system_rules
from reconciler.transfers import TransferDetector

logger = logging.getLogger(__name__)


class TransactionCategorizer:
    """
    Orchestrates transaction categorization.

    Strategy:
    1. Pin manually overridden transactions
    2. Label transfers between the user's own accounts
    3. Apply user, accepted and system rules in priority order
    4. Leave everything else uncategorized
    """

    def __init__(
        self,
        user_rules: Sequence[Any] = (),
        accepted_rules: Sequence[Any] = (),
        system_rules: Optional[Sequence[Any]] = None,
        manual_overrides: Optional[Mapping[str, str]] = None,
        accounts: Optional[Mapping[str, str]] = None,
        detect_transfers: Optional[bool] = None
    ):
        """
        Initialize the categorizer.

        Args:
            user_rules: Rules created by the user
            accepted_rules: Mined rules the user accepted
            system_rules: Default rules (loaded from the configured file if None)
            manual_overrides: Map of transaction hash -> category
            accounts: Account id -> account name map for rule scopes
            detect_transfers: Label transfers (default from configuration)
        """
        config = get_config()

        if system_rules is None:
            system_rules = load_system_rules()
        if detect_transfers is None:
            detect_transfers = bool(config.get("detect_transfers", True))

        self.rules: List[Rule] = build_rule_set(user_rules, accepted_rules, system_rules)
        self.manual_overrides: Dict[str, str] = dict(manual_overrides or {})
        self.accounts: Dict[str, str] = dict(accounts or {})
        self._transfer_detector = TransferDetector() if detect_transfers else None

        self._stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'total': 0,
            'manual': 0,
            'user_rule': 0,
            'autogen_rule': 0,
            'system_rule': 0,
            'uncategorized': 0,
            'transfers': 0,
            'by_category': {},
        }

    def add_rules(self, rules: Sequence[Any]) -> None:
        """Add rules (e.g. newly accepted candidates) to the active set."""
        self.rules.extend(as_rule(r) for r in rules)

    def categorize_all(self, transactions: Sequence[Any]) -> List[Transaction]:
        """
        Categorize all transactions.

        Args:
            transactions: Transactions (or their dictionaries) to categorize

        Returns:
            New list of categorized transactions, in input order
        """
        txns = [as_transaction(t) for t in transactions]
        logger.info("Categorizing %d transactions with %d rules", len(txns), len(self.rules))

        txns = apply_manual_overrides(txns, self.manual_overrides)

        transfers = 0
        if self._transfer_detector is not None:
            txns, transfer_summary = self._transfer_detector.label_transfers(txns)
            transfers = transfer_summary['transfers']

        result = apply_rules(txns, self.rules, accounts=self.accounts)

        self._update_stats(result, transfers)
        self._log_summary()
        return result

    def reapply(self, transactions: Sequence[Any]) -> List[Transaction]:
        """
        Re-run the current rules over already categorized transactions.

        Manual overrides stay as they are.
        """
        result, summary = reapply_categories(list(transactions), self.rules, accounts=self.accounts)
        self._update_stats(result, self._stats.get('transfers', 0))
        self._stats['updated'] = summary['updated']
        return result

    def _update_stats(self, transactions: List[Transaction], transfers: int) -> None:
        stats = self._empty_stats()
        stats['total'] = len(transactions)
        stats['transfers'] = transfers

        for txn in transactions:
            if txn.manual_override:
                stats['manual'] += 1
            elif txn.rule_type == RuleType.NONE or txn.category is None:
                stats['uncategorized'] += 1
            else:
                stats[txn.rule_type.value] += 1

            if txn.category is not None:
                stats['by_category'][txn.category] = stats['by_category'].get(txn.category, 0) + 1

        self._stats = stats

    def _log_summary(self) -> None:
        """Log categorization summary."""
        total = self._stats['total']
        if total == 0:
            return

        def pct(key: str) -> float:
            return (self._stats[key] / total) * 100

        logger.info("Categorization summary: %d transactions", total)
        logger.info("  Manual overrides: %d (%.1f%%)", self._stats['manual'], pct('manual'))
        logger.info("  User rules: %d (%.1f%%)", self._stats['user_rule'], pct('user_rule'))
        logger.info("  Mined rules: %d (%.1f%%)", self._stats['autogen_rule'], pct('autogen_rule'))
        logger.info("  System rules: %d (%.1f%%)", self._stats['system_rule'], pct('system_rule'))
        logger.info("  Uncategorized: %d (%.1f%%)", self._stats['uncategorized'], pct('uncategorized'))
        for category, count in sorted(self._stats['by_category'].items()):
            logger.debug("  %s: %d", get_category_name(category), count)

    def get_statistics(self) -> dict:
        """
        Get categorization statistics.

        Returns:
            Dictionary with categorization stats
        """
        stats = dict(self._stats)
        stats['by_category'] = dict(self._stats['by_category'])
        return stats
