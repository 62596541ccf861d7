"""Pydantic schemas for catalog browsing and delivery."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from marketplace.models.base import MediaCategory


class BreadcrumbOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class PathResponse(BaseModel):
    node_id: str
    path: List[BreadcrumbOut]


class DeliveryItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leaf_id: str
    title: str
    media_category: MediaCategory
    preview_url: Optional[str] = None
    download_url: Optional[str] = None
    qr_payload: Optional[str] = None
    thumbnail_url: Optional[str] = None


class DeliveryResponse(BaseModel):
    node_id: str
    items: List[DeliveryItemOut]
