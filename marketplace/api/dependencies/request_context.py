"""Request-scoped dependencies: caller identity, database session, shared cache client."""

from functools import lru_cache
from typing import Optional

from fastapi import Request

from marketplace.entitlements.cache import OwnershipCache
from marketplace.platform.errors import AuthenticationError

USER_ID_HEADER = "X-User-Id"


def get_current_user_id(request: Request) -> Optional[str]:
    """
    Caller identity set by upstream auth, or the X-User-Id header.

    None means an anonymous caller.
    """
    user_id = getattr(request.state, "user_id", None) or request.headers.get(USER_ID_HEADER)
    if user_id is None:
        return None
    user_id = str(user_id).strip()
    return user_id or None


def require_user_id(request: Request) -> str:
    user_id = get_current_user_id(request)
    if user_id is None:
        raise AuthenticationError()
    return user_id


@lru_cache(maxsize=1)
def get_ownership_cache() -> OwnershipCache:
    """One Redis client (connection pool) per process; a no-op without REDIS_URL."""
    return OwnershipCache()
