"""Catalog browsing helpers and delivery resolution."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.api.dependencies import get_current_user_id, get_ownership_cache
from marketplace.api.schemas.catalog import (
    BreadcrumbOut,
    DeliveryItemOut,
    DeliveryResponse,
    PathResponse,
)
from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.catalog.store import CatalogStore
from marketplace.database.session import get_db_session
from marketplace.delivery.service import DeliveryService
from marketplace.entitlements.cache import OwnershipCache
from marketplace.entitlements.service import EntitlementEngine

router = APIRouter(tags=["catalog"])


@router.get("/catalog/nodes/{node_id}/path", response_model=PathResponse)
def get_node_path(node_id: str, db: Session = Depends(get_db_session)) -> PathResponse:
    """Breadcrumbs from the category root down to the node."""
    path = HierarchyResolver(CatalogStore(db)).path(node_id)
    return PathResponse(
        node_id=node_id,
        path=[BreadcrumbOut(id=folder.id, name=folder.name) for folder in path],
    )


@router.get("/delivery/{node_id}", response_model=DeliveryResponse)
def get_delivery(
    node_id: str,
    user_id: Optional[str] = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
    cache: OwnershipCache = Depends(get_ownership_cache),
) -> DeliveryResponse:
    catalog = CatalogStore(db)
    service = DeliveryService(db, catalog=catalog, engine=EntitlementEngine(db, cache=cache, catalog=catalog))
    items = service.resolve(user_id, node_id)
    return DeliveryResponse(
        node_id=node_id,
        items=[DeliveryItemOut.model_validate(item) for item in items],
    )
