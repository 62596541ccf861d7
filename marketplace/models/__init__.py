"""
Database models for the catalog and the purchase ledger.

Importing this package registers every table on marketplace.db_base.Base.
"""

from marketplace.models.base import (
    MediaCategory,
    TimestampMixin,
    generate_uuid,
    normalize_id,
    parse_category,
)
from marketplace.models.catalog import (
    CatalogNode,
    Folder,
    LeafAsset,
    effective_price,
)
from marketplace.models.purchase import (
    Purchase,
    PurchaseItem,
    PurchaseItemCoverage,
    PurchaseItemKind,
)

__all__ = [
    "MediaCategory",
    "TimestampMixin",
    "generate_uuid",
    "normalize_id",
    "parse_category",
    # Catalog
    "CatalogNode",
    "Folder",
    "LeafAsset",
    "effective_price",
    # Ledger
    "Purchase",
    "PurchaseItem",
    "PurchaseItemCoverage",
    "PurchaseItemKind",
]
