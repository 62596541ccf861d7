"""
Purchase Ledger: append-only storage of completed purchases.

Only the Purchase Recorder appends. Everything else reads; the entitlement
engine reads through ownership_rows(), which is the single aggregation
query a bulk access check is allowed to make.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, NamedTuple, Optional

from sqlalchemy.orm import Session

from marketplace.models.base import MediaCategory
from marketplace.models.purchase import (
    Purchase,
    PurchaseItem,
    PurchaseItemCoverage,
    PurchaseItemKind,
)


class OwnershipRow(NamedTuple):
    """One (item, covered leaf) pair; covered_leaf_id is None for leaf items."""

    kind: PurchaseItemKind
    target_id: str
    media_category: MediaCategory
    covered_leaf_id: Optional[str]


@dataclass(frozen=True)
class OwnedEntry:
    """A purchased item as shown in purchase history (snapshot fields)."""

    purchase_id: str
    purchased_at: datetime
    item: PurchaseItem


@dataclass
class OwnedItems:
    folders: List[OwnedEntry] = field(default_factory=list)
    items: List[OwnedEntry] = field(default_factory=list)


class PurchaseLedger:
    """Reads and appends over the purchases tables."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, purchase_id: str) -> Optional[Purchase]:
        return self.db.query(Purchase).filter(Purchase.id == purchase_id).first()

    def get_for_user(self, purchase_id: str, user_id: str) -> Optional[Purchase]:
        return (
            self.db.query(Purchase)
            .filter(Purchase.id == purchase_id, Purchase.user_id == user_id)
            .first()
        )

    def get_by_payment_ref(self, payment_ref: str) -> Optional[Purchase]:
        return self.db.query(Purchase).filter(Purchase.payment_ref == payment_ref).first()

    def list_for_user(self, user_id: str) -> List[Purchase]:
        """All purchases for a user, newest first."""
        return (
            self.db.query(Purchase)
            .filter(Purchase.user_id == user_id)
            .order_by(Purchase.created_at.desc(), Purchase.id)
            .all()
        )

    def append(self, purchase: Purchase) -> Purchase:
        """
        Stage a new purchase and flush it.

        The caller owns the transaction; an IntegrityError on payment_ref
        surfaces here at flush time.
        """
        self.db.add(purchase)
        self.db.flush()
        return purchase

    def ownership_rows(self, user_id: str) -> List[OwnershipRow]:
        """Every item the user ever bought, with recorded folder coverage, in one query."""
        rows = (
            self.db.query(
                PurchaseItem.kind,
                PurchaseItem.target_id,
                PurchaseItem.media_category,
                PurchaseItemCoverage.leaf_id,
            )
            .join(Purchase, Purchase.id == PurchaseItem.purchase_id)
            .outerjoin(
                PurchaseItemCoverage,
                PurchaseItemCoverage.purchase_item_id == PurchaseItem.id,
            )
            .filter(Purchase.user_id == user_id)
            .all()
        )
        return [OwnershipRow(*row) for row in rows]

    def latest_item_for(self, user_id: str, target_id: str) -> Optional[PurchaseItem]:
        """Most recent purchase line for a target; its snapshot outlives the catalog node."""
        return (
            self.db.query(PurchaseItem)
            .join(Purchase, Purchase.id == PurchaseItem.purchase_id)
            .filter(Purchase.user_id == user_id, PurchaseItem.target_id == target_id)
            .order_by(Purchase.created_at.desc())
            .first()
        )

    def owned_items(self, user_id: str, category: MediaCategory) -> OwnedItems:
        """Purchase history for one category, split into folders and single items."""
        rows = (
            self.db.query(PurchaseItem, Purchase.created_at)
            .join(Purchase, Purchase.id == PurchaseItem.purchase_id)
            .filter(
                Purchase.user_id == user_id,
                PurchaseItem.media_category == category,
            )
            .order_by(Purchase.created_at.desc(), PurchaseItem.position)
            .all()
        )

        owned = OwnedItems()
        for item, purchased_at in rows:
            entry = OwnedEntry(purchase_id=item.purchase_id, purchased_at=purchased_at, item=item)
            if item.kind == PurchaseItemKind.FOLDER:
                owned.folders.append(entry)
            else:
                owned.items.append(entry)
        return owned
