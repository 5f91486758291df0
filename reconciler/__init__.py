"""Reconciliation module for transfer detection."""
from reconciler.transfers import TransferDetector, TransferMatch, find_transfer_hashes

__all__ = ["TransferDetector", "TransferMatch", "find_transfer_hashes"]
