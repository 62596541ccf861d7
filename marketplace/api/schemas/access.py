"""Pydantic schemas for the access endpoints."""

from typing import Dict, List

from pydantic import BaseModel, Field


class AccessResponse(BaseModel):
    node_id: str
    has_access: bool


class BulkAccessRequest(BaseModel):
    """Request body for POST /access/bulk."""

    node_ids: List[str] = Field(
        ...,
        description="Catalog node ids (leaves or folders) to check in one pass",
        max_length=1000,
    )


class BulkAccessResponse(BaseModel):
    results: Dict[str, bool]
