"""Price quotes. Independent of the caller: no identity is read here."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.api.schemas.pricing import CartQuoteRequest, CartQuoteResponse, PriceQuoteResponse
from marketplace.catalog.store import CatalogStore
from marketplace.database.session import get_db_session
from marketplace.pricing.service import PriceResolver

router = APIRouter(prefix="/prices", tags=["prices"])


@router.get("/{node_id}", response_model=PriceQuoteResponse)
def get_price(node_id: str, db: Session = Depends(get_db_session)) -> PriceQuoteResponse:
    quote = PriceResolver(CatalogStore(db)).quote(node_id)
    return PriceQuoteResponse.from_quote(quote)


@router.post("/quote", response_model=CartQuoteResponse)
def quote_cart(body: CartQuoteRequest, db: Session = Depends(get_db_session)) -> CartQuoteResponse:
    cart = PriceResolver(CatalogStore(db)).quote_cart(body.node_ids)
    return CartQuoteResponse(
        items=[PriceQuoteResponse.from_quote(quote) for quote in cart.items],
        subtotal=cart.subtotal,
    )
