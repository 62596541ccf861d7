"""Configuration module for the marketplace engine."""

from marketplace.config.settings import (
    BUNDLE_AUDIT_FAIL_ON_MISCONFIGURED,
    DATABASE_URL,
    LOG_LEVEL,
    OWNERSHIP_CACHE_TTL_SECONDS,
    RECORD_CONFLICT_RETRIES,
    REDIS_URL,
    normalize_database_url,
)

__all__ = [
    "BUNDLE_AUDIT_FAIL_ON_MISCONFIGURED",
    "DATABASE_URL",
    "LOG_LEVEL",
    "OWNERSHIP_CACHE_TTL_SECONDS",
    "RECORD_CONFLICT_RETRIES",
    "REDIS_URL",
    "normalize_database_url",
]
