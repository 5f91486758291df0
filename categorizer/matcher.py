"""
Rule matching.

Decides whether a single rule applies to a single transaction. The same
matcher is used when applying rules and when resolving conflicts between
mined rules, so both agree on what a rule covers.
"""
import logging
import re
from typing import Dict, Mapping, Optional

from config import AMOUNT_TOLERANCE
from normalizer.merchant import NormalizationCache

from .models import MatchType, Rule, RuleScope, RuleSource, Transaction

logger = logging.getLogger(__name__)


class RuleMatcher:
    """
    Matches rules against transactions.

    Normalized text is memoized in the NormalizationCache and compiled
    regexes on the matcher itself. Create one matcher per batch.
    """

    def __init__(
        self,
        cache: Optional[NormalizationCache] = None,
        accounts: Optional[Mapping[str, str]] = None
    ):
        """
        Initialize the matcher.

        Args:
            cache: Normalization memo for this batch (a fresh one if omitted)
            accounts: Read-only map of account id -> account name, used to
                      resolve rule scopes written against account names
        """
        self.cache = cache if cache is not None else NormalizationCache()
        self.accounts = accounts or {}
        self._regexes: Dict[str, Optional[re.Pattern]] = {}

    def matches(self, rule: Rule, transaction: Transaction, account: Optional[str] = None) -> bool:
        """
        Check whether a rule applies to a transaction.

        Args:
            rule: The rule to test
            transaction: The transaction to test
            account: Account name of the transaction, when the caller already
                     knows it

        Returns:
            True if the pattern and every scope constraint match
        """
        if not self._matches_pattern(rule, transaction):
            return False

        if not self._matches_scope(rule.scope, transaction, account):
            return False

        if rule.pins_amount:
            return abs(transaction.abs_amount - abs(rule.amount)) < AMOUNT_TOLERANCE

        return True

    # -------------------------------------------------------------------------
    # Pattern
    # -------------------------------------------------------------------------

    def _matches_pattern(self, rule: Rule, transaction: Transaction) -> bool:
        match_type = rule.match_type

        if match_type == MatchType.INFLOW:
            return transaction.is_inflow

        if match_type == MatchType.MCC:
            pattern = rule.pattern.strip()
            return bool(pattern) and transaction.mcc is not None and transaction.mcc == pattern

        if match_type == MatchType.EXACT and rule.source == RuleSource.MERCHANT_ID_ANALYSIS:
            if rule.pattern and transaction.merchant_id == rule.pattern:
                return True

        texts = [
            text for text in (
                self.cache.normalize(transaction.name),
                self.cache.normalize(transaction.description),
            ) if text
        ]
        if not texts:
            return False

        if match_type == MatchType.REGEX:
            regex = self._compile(rule.pattern)
            if regex is None:
                return False
            return any(regex.search(text) for text in texts)

        pattern = self.cache.normalize(rule.pattern)
        if not pattern:
            return False

        if match_type == MatchType.EXACT:
            return pattern in texts
        if match_type == MatchType.CONTAINS:
            return any(pattern in text for text in texts)

        return False

    def _compile(self, pattern: str) -> Optional[re.Pattern]:
        if pattern in self._regexes:
            return self._regexes[pattern]

        regex = None
        if pattern:
            try:
                regex = re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                logger.warning("Invalid regex pattern %r ignored: %s", pattern, e)
        self._regexes[pattern] = regex
        return regex

    # -------------------------------------------------------------------------
    # Scope
    # -------------------------------------------------------------------------

    def _matches_scope(self, scope: RuleScope, transaction: Transaction, account: Optional[str]) -> bool:
        if scope.account_id is not None and not self._matches_account(scope.account_id, transaction, account):
            return False

        if scope.start_date is not None or scope.end_date is not None:
            if transaction.date is None:
                return False
            if scope.start_date is not None and transaction.date < scope.start_date:
                return False
            if scope.end_date is not None and transaction.date > scope.end_date:
                return False

        amount = transaction.abs_amount
        if scope.min_amount is not None and amount < abs(scope.min_amount):
            return False
        if scope.max_amount is not None and amount > abs(scope.max_amount):
            return False

        if scope.inflow_only and not transaction.is_inflow:
            return False
        if scope.outflow_only and transaction.is_inflow:
            return False

        return True

    def _matches_account(self, wanted: str, transaction: Transaction, account: Optional[str]) -> bool:
        if transaction.account_id is not None and transaction.account_id == wanted:
            return True
        name = account or self.accounts.get(transaction.account_id or '')
        return name is not None and name == wanted


def matches(
    rule: Rule,
    transaction: Transaction,
    account: Optional[str] = None,
    cache: Optional[NormalizationCache] = None
) -> bool:
    """
    Check a single rule against a single transaction.

    Convenience wrapper around RuleMatcher for one-off checks.
    """
    return RuleMatcher(cache=cache).matches(rule, transaction, account)
