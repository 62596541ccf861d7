"""
Purchase endpoints.

POST /purchases is called once payment is confirmed upstream (signature
verification is the gateway integration's job). Replays with the same
payment_ref and payload return the stored purchase with 200.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.api.dependencies import get_ownership_cache, require_user_id
from marketplace.api.schemas.purchases import (
    OwnedEntryOut,
    OwnedItemsResponse,
    PurchaseListResponse,
    PurchaseOut,
    RecordPurchaseRequest,
)
from marketplace.database.session import get_db_session
from marketplace.entitlements.cache import OwnershipCache
from marketplace.ledger.store import PurchaseLedger
from marketplace.models.base import normalize_id, parse_category
from marketplace.platform.errors import NotFoundError
from marketplace.purchases.recorder import PurchaseItemRequest, PurchaseRecorder

router = APIRouter(prefix="/purchases", tags=["purchases"])


@router.post("", response_model=PurchaseOut)
def record_purchase(
    body: RecordPurchaseRequest,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db_session),
    cache: OwnershipCache = Depends(get_ownership_cache),
) -> PurchaseOut:
    recorder = PurchaseRecorder(db, cache=cache)
    purchase = recorder.record(
        user_id,
        body.payment_ref,
        [PurchaseItemRequest(kind=item.kind, target_id=item.target_id) for item in body.items],
        total_amount=body.total_amount,
        discount_applied=body.discount_applied,
        order_ref=body.order_ref,
    )
    return PurchaseOut.model_validate(purchase)


@router.get("", response_model=PurchaseListResponse)
def list_purchases(
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db_session),
) -> PurchaseListResponse:
    purchases = PurchaseLedger(db).list_for_user(user_id)
    return PurchaseListResponse(purchases=[PurchaseOut.model_validate(p) for p in purchases])


@router.get("/owned/{category}", response_model=OwnedItemsResponse)
def list_owned(
    category: str,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db_session),
) -> OwnedItemsResponse:
    """Purchase history for one media category, split into folders and single items."""
    owned = PurchaseLedger(db).owned_items(user_id, parse_category(category))
    return OwnedItemsResponse(
        folders=[OwnedEntryOut.from_entry(entry) for entry in owned.folders],
        items=[OwnedEntryOut.from_entry(entry) for entry in owned.items],
    )


@router.get("/{purchase_id}", response_model=PurchaseOut)
def get_purchase(
    purchase_id: str,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db_session),
) -> PurchaseOut:
    purchase_id = normalize_id(purchase_id, "purchase_id")
    purchase = PurchaseLedger(db).get_for_user(purchase_id, user_id)
    if purchase is None:
        raise NotFoundError("Purchase", purchase_id)
    return PurchaseOut.model_validate(purchase)
