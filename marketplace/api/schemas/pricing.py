"""Pydantic schemas for price quotes."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from marketplace.models.base import MediaCategory
from marketplace.pricing.service import PriceQuote


class PriceQuoteResponse(BaseModel):
    node_id: str
    kind: str
    media_category: MediaCategory
    title: str
    amount: Decimal
    base_price: Decimal
    discount_price: Optional[Decimal] = None
    purchasable: bool
    bundle_savings: Optional[Decimal] = Field(
        None,
        description="Sum of leaf prices minus bundle price; negative means misconfigured",
    )
    leaf_total: Optional[Decimal] = None
    leaf_count: Optional[int] = None
    misconfigured: bool = False

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "PriceQuoteResponse":
        return cls(
            node_id=quote.node_id,
            kind=quote.kind,
            media_category=quote.media_category,
            title=quote.title,
            amount=quote.amount,
            base_price=quote.base_price,
            discount_price=quote.discount_price,
            purchasable=quote.purchasable,
            bundle_savings=quote.bundle_savings,
            leaf_total=quote.leaf_total,
            leaf_count=quote.leaf_count,
            misconfigured=quote.misconfigured,
        )


class CartQuoteRequest(BaseModel):
    node_ids: List[str] = Field(..., min_length=1, max_length=200)


class CartQuoteResponse(BaseModel):
    items: List[PriceQuoteResponse]
    subtotal: Decimal
