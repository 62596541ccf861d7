"""
Purchase ledger models.

A Purchase is written exactly once, at payment confirmation, and never
mutated afterwards. Each PurchaseItem carries a snapshot of the display and
delivery fields as they were at purchase time; that snapshot stays
authoritative for display even if the catalog node is later edited or
deleted.

For folder items the ledger also records which leaves the folder covered at
commit time (PurchaseItemCoverage), so a later folder deletion or reparent
never shrinks what the user paid for.
"""

import enum

from sqlalchemy import (
    Column,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from marketplace.db_base import Base
from marketplace.models.base import MediaCategory, TimestampMixin, generate_uuid

MONEY = Numeric(12, 2)


class PurchaseItemKind(str, enum.Enum):
    LEAF = "leaf"
    FOLDER = "folder"


class Purchase(Base, TimestampMixin):
    """
    Immutable record of one confirmed payment.

    payment_ref is the external gateway reference and the idempotency key:
    the unique constraint on it is what serializes concurrent duplicate
    confirmation callbacks.
    """

    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(255), nullable=False, index=True)
    payment_ref = Column(
        String(255),
        nullable=False,
        unique=True,
        comment="External payment reference (idempotency key)",
    )
    order_ref = Column(String(255), nullable=True, comment="Gateway order id, if any")
    total_amount = Column(MONEY, nullable=False)
    discount_applied = Column(MONEY, nullable=False, default=0)
    items_fingerprint = Column(
        String(64),
        nullable=False,
        comment="sha256 of user and (kind, target_id) pairs; compared on replay",
    )

    items = relationship(
        "PurchaseItem",
        back_populates="purchase",
        order_by="PurchaseItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_purchases_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Purchase(id={self.id}, user_id={self.user_id}, "
            f"payment_ref={self.payment_ref}, items={len(self.items)})>"
        )


class PurchaseItem(Base):
    """One line of a purchase, with its purchase-time snapshot."""

    __tablename__ = "purchase_items"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    purchase_id = Column(
        String(36),
        ForeignKey("purchases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    kind = Column(SAEnum(PurchaseItemKind, name="purchase_item_kind"), nullable=False)
    target_id = Column(String(36), nullable=False, index=True)
    media_category = Column(SAEnum(MediaCategory, name="media_category"), nullable=False)
    price_paid = Column(MONEY, nullable=False)

    # Snapshot captured at purchase time
    title = Column(String(255), nullable=False)
    preview_url = Column(String(1024), nullable=True)
    download_url = Column(String(1024), nullable=True)
    qr_payload = Column(String(2048), nullable=True)
    thumbnail_url = Column(String(1024), nullable=True)

    purchase = relationship("Purchase", back_populates="items")
    coverage = relationship(
        "PurchaseItemCoverage",
        cascade="all, delete-orphan",
        lazy="select",
    )

    __table_args__ = (
        Index("ix_purchase_items_purchase_position", "purchase_id", "position"),
    )


class PurchaseItemCoverage(Base):
    """A leaf covered by a folder purchase at commit time."""

    __tablename__ = "purchase_item_coverage"

    purchase_item_id = Column(
        String(36),
        ForeignKey("purchase_items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    leaf_id = Column(String(36), primary_key=True, index=True)
