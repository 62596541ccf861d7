"""
Access endpoints. Anonymous callers get has_access=false, never an error.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.api.dependencies import get_current_user_id, get_ownership_cache
from marketplace.api.schemas.access import AccessResponse, BulkAccessRequest, BulkAccessResponse
from marketplace.database.session import get_db_session
from marketplace.entitlements.cache import OwnershipCache
from marketplace.entitlements.service import EntitlementEngine

router = APIRouter(prefix="/access", tags=["access"])


@router.get("/{node_id}", response_model=AccessResponse)
def check_access(
    node_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
    cache: OwnershipCache = Depends(get_ownership_cache),
) -> AccessResponse:
    engine = EntitlementEngine(db, cache=cache)
    return AccessResponse(node_id=node_id, has_access=engine.has_access(user_id, node_id))


@router.post("/bulk", response_model=BulkAccessResponse)
def check_access_bulk(
    body: BulkAccessRequest,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
    cache: OwnershipCache = Depends(get_ownership_cache),
) -> BulkAccessResponse:
    """Decide every node in one pass; replaces per-folder polling from the UI."""
    engine = EntitlementEngine(db, cache=cache)
    return BulkAccessResponse(results=engine.has_access_bulk(user_id, body.node_ids))
