"""
Redis cache for per-user ownership sets.

Entries are keyed by user id and a per-user generation counter. The Purchase
Recorder bumps the generation after every commit instead of deleting the
entry, so a check that read the ledger before the commit can only write its
sets under the old generation, which no later check reads. With no
REDIS_URL configured the cache is disabled and every check rebuilds the sets
from the ledger; there is no in-process fallback. Cache failures are logged
and treated as misses, never as denials.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from marketplace.config import OWNERSHIP_CACHE_TTL_SECONDS, REDIS_URL
from marketplace.entitlements.models import OwnershipSets
from marketplace.models.base import MediaCategory

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1
CACHE_KEY_PREFIX = "ownership:v1:"
GENERATION_KEY_PREFIX = "ownership:gen:"


def _key(user_id: str, generation: int) -> str:
    return f"{CACHE_KEY_PREFIX}{user_id}:{generation}"


def _generation_key(user_id: str) -> str:
    return f"{GENERATION_KEY_PREFIX}{user_id}"


class OwnershipCache:
    """Redis-backed ownership cache; a no-op when Redis is not configured."""

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: int = OWNERSHIP_CACHE_TTL_SECONDS) -> None:
        self._ttl_seconds = ttl_seconds
        self._redis: Any = None
        redis_url = REDIS_URL if redis_url is None else redis_url

        if redis_url:
            try:
                import redis

                self._redis = redis.from_url(redis_url, decode_responses=True)
                self._redis.ping()
            except Exception as exc:
                logger.warning("ownership_cache.unavailable", extra={"error": str(exc)})
                self._redis = None

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    def generation(self, user_id: str) -> Optional[int]:
        """
        Current generation for a user, or None when the cache cannot be used.

        Read it before querying the ledger and pass it to get() and set().
        """
        if self._redis is None:
            return None
        try:
            raw = self._redis.get(_generation_key(user_id))
            return int(raw) if raw else 0
        except Exception as exc:
            logger.warning(
                "ownership_cache.generation_failed",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return None

    def get(self, user_id: str, generation: Optional[int]) -> Optional[OwnershipSets]:
        if self._redis is None or generation is None:
            return None
        try:
            raw = self._redis.get(_key(user_id, generation))
            if not raw:
                return None
            return _decode_ownership(json.loads(raw))
        except Exception as exc:
            logger.warning(
                "ownership_cache.get_failed",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return None

    def set(
        self,
        ownership: OwnershipSets,
        generation: Optional[int],
        *,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        """Store sets built at `generation`; skipped if a purchase has bumped it since."""
        if self._redis is None or generation is None:
            return
        if self.generation(ownership.user_id) != generation:
            logger.debug(
                "ownership_cache.set_skipped_stale",
                extra={"user_id": ownership.user_id, "generation": generation},
            )
            return
        ttl = ttl_seconds or self._ttl_seconds
        try:
            self._redis.setex(
                _key(ownership.user_id, generation),
                ttl,
                json.dumps(_encode_ownership(ownership)),
            )
        except Exception as exc:
            logger.warning(
                "ownership_cache.set_failed",
                extra={"user_id": ownership.user_id, "error": str(exc)},
            )

    def invalidate(self, user_id: str) -> None:
        """Bump the user's generation; entries under older generations are never read again."""
        if self._redis is None:
            return
        try:
            self._redis.incr(_generation_key(user_id))
        except Exception as exc:
            logger.warning(
                "ownership_cache.invalidate_failed",
                extra={"user_id": user_id, "error": str(exc)},
            )


def _encode_sets(sets) -> dict:
    return {category.value: sorted(ids) for category, ids in sets.items()}


def _decode_sets(raw: dict) -> dict:
    return {MediaCategory(category): ids for category, ids in raw.items()}


def _encode_ownership(ownership: OwnershipSets) -> dict:
    return {
        "schema_version": CACHE_SCHEMA_VERSION,
        "user_id": ownership.user_id,
        "leaf_ids": _encode_sets(ownership.leaf_ids),
        "folder_ids": _encode_sets(ownership.folder_ids),
        "covered_leaf_ids": _encode_sets(ownership.covered_leaf_ids),
    }


def _decode_ownership(raw: dict) -> OwnershipSets:
    if int(raw.get("schema_version", CACHE_SCHEMA_VERSION)) != CACHE_SCHEMA_VERSION:
        raise ValueError("Unsupported ownership cache schema version")
    return OwnershipSets(
        user_id=raw["user_id"],
        leaf_ids=_decode_sets(raw.get("leaf_ids", {})),
        folder_ids=_decode_sets(raw.get("folder_ids", {})),
        covered_leaf_ids=_decode_sets(raw.get("covered_leaf_ids", {})),
    )
