"""
Runtime configuration for the marketplace engine.

All values come from environment variables (a local .env file is honoured
for development). Nothing here is mutated at runtime.
"""

import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./marketplace.db")

# Ownership cache is disabled when REDIS_URL is unset
REDIS_URL = os.getenv("REDIS_URL") or None
OWNERSHIP_CACHE_TTL_SECONDS = int(os.getenv("OWNERSHIP_CACHE_TTL_SECONDS", "300"))

# Read-after-conflict retries when two confirmations race on one payment_ref
RECORD_CONFLICT_RETRIES = int(os.getenv("RECORD_CONFLICT_RETRIES", "3"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

BUNDLE_AUDIT_FAIL_ON_MISCONFIGURED = (
    os.getenv("BUNDLE_AUDIT_FAIL_ON_MISCONFIGURED", "false").lower() == "true"
)


def normalize_database_url(url: str) -> str:
    """Accept Heroku/Render style postgres:// URLs."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url
