"""
Pydantic schemas for the purchase endpoints.

Item responses always come from the purchase-time snapshot, never from the
live catalog.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.ledger.store import OwnedEntry
from marketplace.models.base import MediaCategory
from marketplace.models.purchase import PurchaseItemKind


class PurchaseItemIn(BaseModel):
    kind: PurchaseItemKind
    target_id: str = Field(..., min_length=1, max_length=64)


class RecordPurchaseRequest(BaseModel):
    """Request body for POST /purchases (a confirmed payment)."""

    payment_ref: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="External payment reference; replays with the same payload are idempotent",
        examples=["pay_29QQoUBi66xm2f"],
    )
    items: List[PurchaseItemIn] = Field(..., min_length=1)
    total_amount: Optional[Decimal] = Field(None, ge=0)
    discount_applied: Decimal = Field(Decimal("0"), ge=0)
    order_ref: Optional[str] = Field(None, max_length=255)


class PurchaseItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: PurchaseItemKind
    target_id: str
    media_category: MediaCategory
    price_paid: Decimal
    title: str
    preview_url: Optional[str] = None
    download_url: Optional[str] = None
    qr_payload: Optional[str] = None
    thumbnail_url: Optional[str] = None


class PurchaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    payment_ref: str
    order_ref: Optional[str] = None
    total_amount: Decimal
    discount_applied: Decimal
    created_at: datetime
    items: List[PurchaseItemOut]


class PurchaseListResponse(BaseModel):
    purchases: List[PurchaseOut]


class OwnedEntryOut(PurchaseItemOut):
    purchase_id: str
    purchased_at: datetime

    @classmethod
    def from_entry(cls, entry: OwnedEntry) -> "OwnedEntryOut":
        item = PurchaseItemOut.model_validate(entry.item)
        return cls(
            **item.model_dump(),
            purchase_id=entry.purchase_id,
            purchased_at=entry.purchased_at,
        )


class OwnedItemsResponse(BaseModel):
    folders: List[OwnedEntryOut]
    items: List[OwnedEntryOut]
