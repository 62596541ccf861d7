"""Purchase recording (the only ledger writer)."""

from marketplace.purchases.recorder import PurchaseItemRequest, PurchaseRecorder, items_fingerprint

__all__ = ["PurchaseItemRequest", "PurchaseRecorder", "items_fingerprint"]
