"""
Catalog Store: folder and leaf asset storage for the four media hierarchies.

The entitlement engine only uses the read half of this class. The write half
is the contract the admin tooling uses (create, move, reprice, delete) and
enforces the tree invariants: one category per chain, no cycles, and
discount lower than base price.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from marketplace.models.base import MediaCategory, normalize_id
from marketplace.models.catalog import CatalogNode, Folder, LeafAsset, validate_prices
from marketplace.platform.errors import InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)

# Upper bound on IN (...) list sizes for bulk lookups
BULK_CHUNK_SIZE = 500


def _chunks(ids: List[str]) -> Iterable[List[str]]:
    for start in range(0, len(ids), BULK_CHUNK_SIZE):
        yield ids[start:start + BULK_CHUNK_SIZE]


def _money(value, field: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except ArithmeticError:
        raise InvalidArgumentError(f"{field} is not a number", details={"field": field}) from None


class CatalogStore:
    """Folder/leaf lookups and admin-side mutations over one session."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Reads
    # =========================================================================

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        return self.db.query(Folder).filter(Folder.id == folder_id).first()

    def get_leaf(self, leaf_id: str) -> Optional[LeafAsset]:
        return self.db.query(LeafAsset).filter(LeafAsset.id == leaf_id).first()

    def get_node(self, node_id: str) -> Optional[CatalogNode]:
        """Folder or leaf with this id, or None. Ids are unique across both tables."""
        return self.get_leaf(node_id) or self.get_folder(node_id)

    def get_folders(self, folder_ids: Iterable[str]) -> Dict[str, Folder]:
        ids = sorted(set(folder_ids))
        found: Dict[str, Folder] = {}
        for chunk in _chunks(ids):
            for folder in self.db.query(Folder).filter(Folder.id.in_(chunk)).all():
                found[folder.id] = folder
        return found

    def get_leaves(self, leaf_ids: Iterable[str]) -> Dict[str, LeafAsset]:
        ids = sorted(set(leaf_ids))
        found: Dict[str, LeafAsset] = {}
        for chunk in _chunks(ids):
            for leaf in self.db.query(LeafAsset).filter(LeafAsset.id.in_(chunk)).all():
                found[leaf.id] = leaf
        return found

    def get_nodes(self, node_ids: Iterable[str]) -> Dict[str, CatalogNode]:
        """Bulk form of get_node: two queries regardless of how many ids."""
        ids = set(node_ids)
        nodes: Dict[str, CatalogNode] = dict(self.get_leaves(ids))
        remaining = ids - nodes.keys()
        if remaining:
            nodes.update(self.get_folders(remaining))
        return nodes

    def child_folders(self, folder_id: str) -> List[Folder]:
        return (
            self.db.query(Folder)
            .filter(Folder.parent_id == folder_id)
            .order_by(Folder.created_at, Folder.id)
            .all()
        )

    def leaves_in(self, folder_id: str) -> List[LeafAsset]:
        return (
            self.db.query(LeafAsset)
            .filter(LeafAsset.parent_id == folder_id)
            .order_by(LeafAsset.created_at, LeafAsset.id)
            .all()
        )

    def roots(self, category: MediaCategory) -> List[Folder]:
        return (
            self.db.query(Folder)
            .filter(Folder.media_category == category, Folder.parent_id.is_(None))
            .order_by(Folder.created_at, Folder.id)
            .all()
        )

    def purchasable_folders(self, category: Optional[MediaCategory] = None) -> List[Folder]:
        query = self.db.query(Folder).filter(Folder.is_purchasable.is_(True))
        if category is not None:
            query = query.filter(Folder.media_category == category)
        return query.order_by(Folder.media_category, Folder.name).all()

    # =========================================================================
    # Admin writes
    # =========================================================================

    def create_folder(
        self,
        *,
        media_category: MediaCategory,
        name: str,
        parent_id: Optional[str] = None,
        is_purchasable: bool = False,
        base_price=0,
        discount_price=None,
        description: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
    ) -> Folder:
        if not name or not name.strip():
            raise InvalidArgumentError("name is required", details={"field": "name"})
        base = _money(base_price, "base_price")
        discount = _money(discount_price, "discount_price")
        validate_prices(base, discount)

        if parent_id is not None:
            parent_id = normalize_id(parent_id, "parent_id")
            self._require_parent(parent_id, media_category)

        folder = Folder(
            media_category=media_category,
            parent_id=parent_id,
            name=name.strip(),
            description=description,
            thumbnail_url=thumbnail_url,
            is_purchasable=is_purchasable,
            base_price=base,
            discount_price=discount,
        )
        self.db.add(folder)
        self.db.commit()
        self.db.refresh(folder)

        logger.info(
            "catalog.folder_created",
            extra={
                "folder_id": folder.id,
                "media_category": media_category.value,
                "parent_id": parent_id,
            },
        )
        return folder

    def create_leaf(
        self,
        *,
        parent_id: str,
        title: str,
        base_price,
        discount_price=None,
        media_category: Optional[MediaCategory] = None,
        description: Optional[str] = None,
        preview_url: Optional[str] = None,
        download_url: Optional[str] = None,
        qr_payload: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
    ) -> LeafAsset:
        """Create a leaf under an existing folder. Category defaults to the parent's."""
        if not title or not title.strip():
            raise InvalidArgumentError("title is required", details={"field": "title"})
        parent_id = normalize_id(parent_id, "parent_id")
        base = _money(base_price, "base_price")
        discount = _money(discount_price, "discount_price")
        validate_prices(base, discount)

        parent = self.get_folder(parent_id)
        if parent is None:
            raise NotFoundError("Folder", parent_id)
        category = media_category or parent.media_category
        if category != parent.media_category:
            raise InvalidArgumentError(
                "Leaf category must match its folder's category",
                details={"field": "media_category"},
            )

        leaf = LeafAsset(
            media_category=category,
            parent_id=parent_id,
            title=title.strip(),
            description=description,
            base_price=base,
            discount_price=discount,
            preview_url=preview_url,
            download_url=download_url,
            qr_payload=qr_payload,
            thumbnail_url=thumbnail_url,
        )
        self.db.add(leaf)
        self.db.commit()
        self.db.refresh(leaf)

        logger.info(
            "catalog.leaf_created",
            extra={"leaf_id": leaf.id, "media_category": category.value, "parent_id": parent_id},
        )
        return leaf

    def move_folder(self, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        """Reparent a folder; rejects moves into itself or its own subtree."""
        folder_id = normalize_id(folder_id, "folder_id")
        folder = self.get_folder(folder_id)
        if folder is None:
            raise NotFoundError("Folder", folder_id)

        if new_parent_id is not None:
            new_parent_id = normalize_id(new_parent_id, "parent_id")
            if new_parent_id == folder_id or self._is_within(new_parent_id, folder_id):
                raise InvalidArgumentError(
                    "Cannot move folder into itself or its descendants",
                    details={"folder_id": folder_id, "parent_id": new_parent_id},
                )
            self._require_parent(new_parent_id, folder.media_category)

        folder.parent_id = new_parent_id
        self.db.commit()
        self.db.refresh(folder)
        logger.info(
            "catalog.folder_moved",
            extra={"folder_id": folder_id, "parent_id": new_parent_id},
        )
        return folder

    def move_leaf(self, leaf_id: str, new_parent_id: str) -> LeafAsset:
        leaf_id = normalize_id(leaf_id, "leaf_id")
        new_parent_id = normalize_id(new_parent_id, "parent_id")
        leaf = self.get_leaf(leaf_id)
        if leaf is None:
            raise NotFoundError("LeafAsset", leaf_id)
        self._require_parent(new_parent_id, leaf.media_category)

        leaf.parent_id = new_parent_id
        self.db.commit()
        self.db.refresh(leaf)
        logger.info("catalog.leaf_moved", extra={"leaf_id": leaf_id, "parent_id": new_parent_id})
        return leaf

    def update_prices(self, node_id: str, *, base_price, discount_price=None) -> CatalogNode:
        """Reprice a node. Existing purchases keep the price they snapshotted."""
        node_id = normalize_id(node_id, "node_id")
        node = self.get_node(node_id)
        if node is None:
            raise NotFoundError("Catalog node", node_id)
        base = _money(base_price, "base_price")
        discount = _money(discount_price, "discount_price")
        validate_prices(base, discount)

        node.base_price = base
        node.discount_price = discount
        self.db.commit()
        self.db.refresh(node)
        return node

    def delete_folder(self, folder_id: str) -> None:
        """Delete a folder row only. Children stay in place as an orphaned subtree."""
        folder_id = normalize_id(folder_id, "folder_id")
        folder = self.get_folder(folder_id)
        if folder is None:
            raise NotFoundError("Folder", folder_id)
        self.db.delete(folder)
        self.db.commit()
        logger.info("catalog.folder_deleted", extra={"folder_id": folder_id})

    def delete_leaf(self, leaf_id: str) -> None:
        leaf_id = normalize_id(leaf_id, "leaf_id")
        leaf = self.get_leaf(leaf_id)
        if leaf is None:
            raise NotFoundError("LeafAsset", leaf_id)
        self.db.delete(leaf)
        self.db.commit()
        logger.info("catalog.leaf_deleted", extra={"leaf_id": leaf_id})

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_parent(self, parent_id: str, category: MediaCategory) -> Folder:
        parent = self.get_folder(parent_id)
        if parent is None:
            raise NotFoundError("Folder", parent_id)
        if parent.media_category != category:
            raise InvalidArgumentError(
                "Parent folder belongs to a different media category",
                details={"parent_id": parent_id, "media_category": category.value},
            )
        return parent

    def _is_within(self, candidate_id: str, folder_id: str) -> bool:
        """True if candidate_id is folder_id or lies anywhere below it."""
        seen = set()
        current = self.get_folder(candidate_id)
        while current is not None and current.id not in seen:
            if current.id == folder_id:
                return True
            seen.add(current.id)
            current = self.get_folder(current.parent_id) if current.parent_id else None
        return False
