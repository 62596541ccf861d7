"""Append-only purchase ledger."""

from marketplace.ledger.store import OwnedEntry, OwnedItems, OwnershipRow, PurchaseLedger

__all__ = ["OwnedEntry", "OwnedItems", "OwnershipRow", "PurchaseLedger"]
