"""
Transfer detection.

Finds transactions that move money between the user's own accounts:
1. Same-day pairs of equal absolute amounts with opposite signs in
   different accounts
2. Transfer wording in the name or description

Detected transfers get a "transfer" label; their category is left alone.
"""
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Set, Tuple

from config import TRANSFER_LABEL
from categorizer.models import Transaction, merge_labels

logger = logging.getLogger(__name__)

TRANSFER_KEYWORDS: List[str] = [
    'transfer', 'xfer', 'credit card payment', 'cc payment', 'card payment',
    'balance transfer', 'account transfer', 'online transfer', 'bill payment',
    'autopay', 'auto pay', 'e transfer', 'etransfer',
]

TRANSFER_PATTERNS: List[re.Pattern] = [
    re.compile(r'transfer.*\bto\b'),
    re.compile(r'\bfrom\b.*\baccount\b'),
    re.compile(r'payment.*\bcard\b|\bcard\b.*payment'),
    re.compile(r'online.*transfer|bill.*payment'),
]

_KEYWORD_PATTERNS = [re.compile(r'\b' + re.escape(k) + r'\b') for k in TRANSFER_KEYWORDS]


@dataclass
class TransferMatch:
    """Why a transaction was flagged as a transfer."""
    transaction: Transaction
    reason: str  # "paired" or "keyword"
    counterpart_hash: Optional[str] = None


class TransferDetector:
    """
    Detects transfers between a user's own accounts.
    """

    def __init__(self, label: str = TRANSFER_LABEL):
        """
        Initialize the detector.

        Args:
            label: Label added to detected transfers
        """
        self.label = label

    def detect(self, transactions: Sequence[Transaction]) -> List[TransferMatch]:
        """
        Find transfers in a batch of transactions.

        Args:
            transactions: Transactions to scan

        Returns:
            One TransferMatch per detected transfer, in input order
        """
        paired = self._paired_transfers(transactions)

        matches: List[TransferMatch] = []
        for txn in transactions:
            if txn.hash in paired:
                matches.append(TransferMatch(txn, "paired", paired[txn.hash]))
            elif self.has_transfer_wording(txn):
                matches.append(TransferMatch(txn, "keyword"))

        return matches

    def label_transfers(self, transactions: Sequence[Transaction]) -> Tuple[List[Transaction], dict]:
        """
        Add the transfer label to detected transfers.

        Returns:
            Tuple of (transactions, summary stats)
        """
        found = {m.transaction.hash: m for m in self.detect(transactions)}

        result = [
            replace(t, labels=merge_labels(t.labels, [self.label])) if t.hash in found else t
            for t in transactions
        ]

        summary = {
            'total_transactions': len(transactions),
            'transfers': len(found),
            'paired': sum(1 for m in found.values() if m.reason == "paired"),
            'keyword': sum(1 for m in found.values() if m.reason == "keyword"),
        }
        if found:
            logger.info("Detected %d transfers (%d paired, %d by keyword)",
                        summary['transfers'], summary['paired'], summary['keyword'])
        return result, summary

    def _paired_transfers(self, transactions: Sequence[Transaction]) -> Dict[str, str]:
        """Map hash -> counterpart hash for same-day opposite-sign pairs across accounts."""
        groups: Dict[Tuple, List[Transaction]] = defaultdict(list)
        for txn in transactions:
            if txn.date is None or not txn.amount:
                continue
            groups[(txn.date, round(txn.abs_amount, 2))].append(txn)

        paired: Dict[str, str] = {}
        for group in groups.values():
            if len(group) < 2:
                continue
            for a in group:
                for b in group:
                    if a.account_id != b.account_id and (a.amount > 0) != (b.amount > 0):
                        paired.setdefault(a.hash, b.hash)
                        break
        return paired

    @staticmethod
    def has_transfer_wording(transaction: Transaction) -> bool:
        """Check the name and description for transfer keywords."""
        combined = f"{transaction.name} {transaction.description}".lower()
        combined = re.sub(r'[^\w\s]', ' ', combined)

        if any(p.search(combined) for p in _KEYWORD_PATTERNS):
            return True
        return any(p.search(combined) for p in TRANSFER_PATTERNS)


def find_transfer_hashes(transactions: Sequence[Transaction]) -> Set[str]:
    """Hashes of every transaction detected as a transfer."""
    return {m.transaction.hash for m in TransferDetector().detect(transactions)}
