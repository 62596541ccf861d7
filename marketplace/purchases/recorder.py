"""
Purchase Recorder: commits a confirmed checkout into an immutable Purchase.

payment_ref is the idempotency key. Replaying a confirmation with the same
payload returns the stored purchase; replaying it with a different payload
raises DuplicateReferenceError. Two confirmations racing on one reference
are serialized by the unique constraint on purchases.payment_ref: the loser
rolls back, re-reads, and resolves to the winner's record.

Prices and display fields are snapshotted from the catalog as it is at
commit time. Folder items also record the leaves they covered at that
moment.
"""

import hashlib
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.catalog.store import CatalogStore
from marketplace.config import RECORD_CONFLICT_RETRIES
from marketplace.entitlements.cache import OwnershipCache
from marketplace.ledger.store import PurchaseLedger
from marketplace.models.base import normalize_id
from marketplace.models.catalog import Folder, LeafAsset, effective_price
from marketplace.models.purchase import (
    Purchase,
    PurchaseItem,
    PurchaseItemCoverage,
    PurchaseItemKind,
)
from marketplace.monitoring.entitlement_alerts import emit_duplicate_reference
from marketplace.platform.errors import (
    DuplicateReferenceError,
    InvalidArgumentError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseItemRequest:
    """One line of a confirmed checkout, as received from the payment flow."""

    kind: Union[PurchaseItemKind, str]
    target_id: str


ItemKey = Tuple[PurchaseItemKind, str]


def items_fingerprint(user_id: str, keys: Iterable[ItemKey]) -> str:
    """Order-independent digest of who bought which (kind, target) pairs."""
    canonical = "\n".join(
        [user_id] + sorted(f"{kind.value}:{target_id}" for kind, target_id in keys)
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_kind(value: Union[PurchaseItemKind, str], position: int) -> PurchaseItemKind:
    try:
        return PurchaseItemKind(value)
    except ValueError:
        raise InvalidArgumentError(
            f"Unknown item kind: {value!r}",
            details={"field": f"items[{position}].kind"},
        ) from None


def _parse_money(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidArgumentError(f"{field} is not a number", details={"field": field}) from None
    if amount < 0:
        raise InvalidArgumentError(f"{field} must not be negative", details={"field": field})
    return amount


class PurchaseRecorder:
    """The only writer to the purchase ledger."""

    def __init__(
        self,
        db: Session,
        *,
        catalog: Optional[CatalogStore] = None,
        ledger: Optional[PurchaseLedger] = None,
        cache: Optional[OwnershipCache] = None,
        max_retries: int = RECORD_CONFLICT_RETRIES,
    ):
        self.db = db
        self.catalog = catalog or CatalogStore(db)
        self.ledger = ledger or PurchaseLedger(db)
        self.cache = cache if cache is not None else OwnershipCache()
        self.max_retries = max_retries

    def record(
        self,
        user_id: str,
        payment_ref: str,
        items: Sequence[PurchaseItemRequest],
        *,
        total_amount=None,
        discount_applied=0,
        order_ref: Optional[str] = None,
    ) -> Purchase:
        """
        Commit a purchase, or return the one already bound to payment_ref.

        Raises:
            InvalidArgumentError: blank user/reference, empty or malformed items
            NotFoundError: an item's target is not in the catalog
            DuplicateReferenceError: payment_ref already bound to other items
        """
        user = str(user_id or "").strip()
        if not user:
            raise InvalidArgumentError("user_id is required", details={"field": "user_id"})
        ref = str(payment_ref or "").strip()
        if not ref:
            raise InvalidArgumentError("payment_ref is required", details={"field": "payment_ref"})
        keys = self._validate_items(items)
        discount = _parse_money(discount_applied or 0, "discount_applied")
        total = _parse_money(total_amount, "total_amount") if total_amount is not None else None
        fingerprint = items_fingerprint(user, keys)

        existing = self.ledger.get_by_payment_ref(ref)
        if existing is not None:
            return self._resolve_replay(existing, user, ref, fingerprint)

        attempt = 0
        while True:
            purchase = self._build(user, ref, order_ref, keys, fingerprint, total, discount)
            try:
                self.ledger.append(purchase)
                self.db.commit()
                break
            except IntegrityError:
                self.db.rollback()
                existing = self.ledger.get_by_payment_ref(ref)
                if existing is not None:
                    logger.info(
                        "purchase.concurrent_confirmation",
                        extra={"user_id": user, "payment_ref": ref, "attempt": attempt},
                    )
                    return self._resolve_replay(existing, user, ref, fingerprint)
                attempt += 1
                if attempt > self.max_retries:
                    raise
                logger.warning(
                    "purchase.commit_conflict_retry",
                    extra={"user_id": user, "payment_ref": ref, "attempt": attempt},
                )

        self.cache.invalidate(user)
        logger.info(
            "purchase.recorded",
            extra={
                "purchase_id": purchase.id,
                "user_id": user,
                "payment_ref": ref,
                "item_count": len(keys),
                "total_amount": str(purchase.total_amount),
            },
        )
        return purchase

    def _validate_items(self, items: Sequence[PurchaseItemRequest]) -> List[ItemKey]:
        if not items:
            raise InvalidArgumentError("At least one item is required", details={"field": "items"})

        keys: List[ItemKey] = []
        seen = set()
        for position, item in enumerate(items):
            kind = _parse_kind(item.kind, position)
            target_id = normalize_id(item.target_id, f"items[{position}].target_id")
            if target_id in seen:
                raise InvalidArgumentError(
                    "Duplicate item in purchase",
                    details={"field": f"items[{position}].target_id", "target_id": target_id},
                )
            seen.add(target_id)
            keys.append((kind, target_id))
        return keys

    def _resolve_replay(self, existing: Purchase, user_id: str, payment_ref: str, fingerprint: str) -> Purchase:
        if existing.items_fingerprint == fingerprint:
            logger.info(
                "purchase.replayed",
                extra={"purchase_id": existing.id, "user_id": user_id, "payment_ref": payment_ref},
            )
            return existing
        emit_duplicate_reference(user_id, payment_ref, existing.id)
        raise DuplicateReferenceError(payment_ref, existing.id)

    def _build(
        self,
        user_id: str,
        payment_ref: str,
        order_ref: Optional[str],
        keys: List[ItemKey],
        fingerprint: str,
        total: Optional[Decimal],
        discount: Decimal,
    ) -> Purchase:
        """Snapshot current catalog state into a new, unsaved Purchase."""
        resolver = HierarchyResolver(self.catalog)
        nodes = self.catalog.get_nodes(target_id for _, target_id in keys)

        purchase_items: List[PurchaseItem] = []
        for position, (kind, target_id) in enumerate(keys):
            node = nodes.get(target_id)
            if node is None:
                raise NotFoundError("LeafAsset" if kind == PurchaseItemKind.LEAF else "Folder", target_id)

            expected = LeafAsset if kind == PurchaseItemKind.LEAF else Folder
            if not isinstance(node, expected):
                raise InvalidArgumentError(
                    f"Item {target_id} is not a {kind.value}",
                    details={"field": f"items[{position}].kind", "target_id": target_id},
                )
            if isinstance(node, Folder) and not node.is_purchasable:
                raise InvalidArgumentError(
                    "Folder is not purchasable as a bundle",
                    details={"field": f"items[{position}].target_id", "target_id": target_id},
                )

            item = PurchaseItem(
                position=position,
                kind=kind,
                target_id=target_id,
                media_category=node.media_category,
                price_paid=effective_price(node),
                title=node.title,
                preview_url=getattr(node, "preview_url", None),
                download_url=getattr(node, "download_url", None),
                qr_payload=getattr(node, "qr_payload", None),
                thumbnail_url=node.thumbnail_url,
            )
            if isinstance(node, Folder):
                item.coverage = [
                    PurchaseItemCoverage(leaf_id=leaf.id)
                    for leaf in resolver.descendant_leaves(node.id)
                ]
            purchase_items.append(item)

        subtotal = sum((item.price_paid for item in purchase_items), Decimal("0"))
        if discount > subtotal:
            raise InvalidArgumentError(
                "discount_applied exceeds the item subtotal",
                details={"field": "discount_applied"},
            )

        return Purchase(
            user_id=user_id,
            payment_ref=payment_ref,
            order_ref=order_ref,
            total_amount=total if total is not None else subtotal - discount,
            discount_applied=discount,
            items_fingerprint=fingerprint,
            items=purchase_items,
        )
