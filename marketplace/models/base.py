"""
Shared model helpers: timestamps, id generation, id validation, media categories.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime

from marketplace.platform.errors import InvalidArgumentError


class MediaCategory(str, enum.Enum):
    """The four independent catalog hierarchies. Categories never cross-grant."""

    TEMPLATE = "template"
    PICTURE = "picture"
    VIDEO = "video"
    AUDIO = "audio"


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_id(value: Any, field: str = "id") -> str:
    """
    Validate a catalog or purchase id and return its canonical form.

    Raises InvalidArgumentError for anything that is not a UUID string.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{field} is required", details={"field": field})
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise InvalidArgumentError(
            f"{field} is malformed",
            details={"field": field, "value": value[:64]},
        ) from None


def parse_category(value: Any) -> MediaCategory:
    try:
        return MediaCategory(str(value).strip().lower())
    except ValueError:
        raise InvalidArgumentError(
            f"Unknown media category: {value!r}",
            details={"field": "media_category"},
        ) from None


class TimestampMixin:
    """Creation timestamp shared by catalog and ledger rows."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Row creation time (UTC)",
    )
