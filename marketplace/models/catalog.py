"""
Catalog models: folders and leaf assets for all four media categories.

The tree is an arena of rows keyed by id. parent_id is a plain indexed
back-reference with no foreign key: admin tooling may delete or reparent a
folder while reads are in flight, and children of a deleted folder are left
in place as orphans rather than cascaded away.
"""

from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import Boolean, Column, Enum as SAEnum, Index, Numeric, String, Text

from marketplace.db_base import Base
from marketplace.models.base import MediaCategory, TimestampMixin, generate_uuid
from marketplace.platform.errors import InvalidArgumentError

MONEY = Numeric(12, 2)


class Folder(Base, TimestampMixin):
    """
    A folder in one media category's hierarchy.

    parent_id is NULL only for a category root. Purchasable folders are sold
    as bundles covering every current and future descendant leaf.
    """

    __tablename__ = "catalog_folders"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    media_category = Column(
        SAEnum(MediaCategory, name="media_category"),
        nullable=False,
        index=True,
    )
    parent_id = Column(
        String(36),
        nullable=True,
        index=True,
        comment="Parent folder id; NULL for a category root",
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    thumbnail_url = Column(String(1024), nullable=True)
    is_purchasable = Column(Boolean, nullable=False, default=False)
    base_price = Column(MONEY, nullable=False, default=Decimal("0"))
    discount_price = Column(MONEY, nullable=True)

    __table_args__ = (
        Index("ix_catalog_folders_category_parent", "media_category", "parent_id"),
    )

    kind = "folder"

    @property
    def title(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return (
            f"<Folder(id={self.id}, category={self.media_category.value}, "
            f"parent_id={self.parent_id}, name={self.name!r})>"
        )


class LeafAsset(Base, TimestampMixin):
    """A purchasable asset (video template, picture, video clip or audio track)."""

    __tablename__ = "catalog_leaf_assets"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    media_category = Column(
        SAEnum(MediaCategory, name="media_category"),
        nullable=False,
        index=True,
    )
    parent_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(MONEY, nullable=False)
    discount_price = Column(MONEY, nullable=True)

    # Delivery fields; irrelevant to entitlement decisions
    preview_url = Column(String(1024), nullable=True)
    download_url = Column(String(1024), nullable=True)
    qr_payload = Column(String(2048), nullable=True)
    thumbnail_url = Column(String(1024), nullable=True)

    kind = "leaf"

    def __repr__(self) -> str:
        return (
            f"<LeafAsset(id={self.id}, category={self.media_category.value}, "
            f"parent_id={self.parent_id}, title={self.title!r})>"
        )


CatalogNode = Union[Folder, LeafAsset]


def effective_price(node: CatalogNode) -> Decimal:
    """Discount price when present, otherwise base price."""
    if node.discount_price is not None:
        return Decimal(node.discount_price)
    return Decimal(node.base_price or 0)


def validate_prices(base_price: Decimal, discount_price: Optional[Decimal]) -> None:
    if base_price < 0:
        raise InvalidArgumentError("base_price must not be negative", details={"field": "base_price"})
    if discount_price is not None:
        if discount_price < 0:
            raise InvalidArgumentError(
                "discount_price must not be negative", details={"field": "discount_price"}
            )
        if discount_price >= base_price:
            raise InvalidArgumentError(
                "discount_price must be lower than base_price",
                details={"field": "discount_price"},
            )
