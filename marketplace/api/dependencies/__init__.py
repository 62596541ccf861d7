"""FastAPI dependencies."""

from marketplace.api.dependencies.request_context import (
    USER_ID_HEADER,
    get_current_user_id,
    get_ownership_cache,
    require_user_id,
)

__all__ = [
    "USER_ID_HEADER",
    "get_current_user_id",
    "get_ownership_cache",
    "require_user_id",
]
