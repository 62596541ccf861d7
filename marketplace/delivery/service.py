"""
Delivery availability: turns a positive entitlement into delivery fields.

Entitlement and availability are separate questions. A user can be entitled
to a node that admin tooling has since removed; that is reported as
UnavailableError (carrying the purchase-time title), never as a denial.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.catalog.store import CatalogStore
from marketplace.entitlements.service import EntitlementEngine
from marketplace.ledger.store import PurchaseLedger
from marketplace.models.base import MediaCategory, normalize_id
from marketplace.models.catalog import LeafAsset
from marketplace.platform.errors import (
    AuthenticationError,
    PermissionDeniedError,
    UnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryInfo:
    leaf_id: str
    title: str
    media_category: MediaCategory
    preview_url: Optional[str]
    download_url: Optional[str]
    qr_payload: Optional[str]
    thumbnail_url: Optional[str]

    @classmethod
    def from_leaf(cls, leaf: LeafAsset) -> "DeliveryInfo":
        return cls(
            leaf_id=leaf.id,
            title=leaf.title,
            media_category=leaf.media_category,
            preview_url=leaf.preview_url,
            download_url=leaf.download_url,
            qr_payload=leaf.qr_payload,
            thumbnail_url=leaf.thumbnail_url,
        )


class DeliveryService:
    """Resolves what an entitled user can download for a node."""

    def __init__(
        self,
        db: Session,
        *,
        engine: Optional[EntitlementEngine] = None,
        catalog: Optional[CatalogStore] = None,
        ledger: Optional[PurchaseLedger] = None,
    ):
        self.catalog = catalog or CatalogStore(db)
        self.ledger = ledger or PurchaseLedger(db)
        self.engine = engine or EntitlementEngine(db, catalog=self.catalog, ledger=self.ledger)

    def resolve(self, user_id: Optional[str], node_id: str) -> List[DeliveryInfo]:
        """
        Delivery fields for a leaf, or for every current leaf under a folder.

        Raises:
            AuthenticationError: anonymous caller
            PermissionDeniedError: caller is not entitled to the node
            UnavailableError: caller is entitled but the node was removed
        """
        node_id = normalize_id(node_id, "node_id")
        if user_id is None or not str(user_id).strip():
            raise AuthenticationError()

        decision = self.engine.explain(user_id, node_id)
        if not decision.granted:
            raise PermissionDeniedError(
                "Purchase this item or a folder containing it to download it",
                details={"node_id": node_id},
            )

        node = self.catalog.get_node(node_id)
        if node is None:
            snapshot = self.ledger.latest_item_for(str(user_id).strip(), node_id)
            logger.info(
                "delivery.asset_unavailable",
                extra={"user_id": user_id, "node_id": node_id, "source": decision.source},
            )
            raise UnavailableError(node_id, snapshot.title if snapshot else None)

        if isinstance(node, LeafAsset):
            return [DeliveryInfo.from_leaf(node)]

        resolver = HierarchyResolver(self.catalog)
        return [DeliveryInfo.from_leaf(leaf) for leaf in resolver.descendant_leaves(node.id)]
