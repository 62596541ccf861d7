"""
Entitlement engine for catalog access.

This module provides:
- EntitlementEngine: single and bulk access decisions
- OwnershipSets: per-user purchased leaf/folder sets, partitioned by category
- AccessDecision: a decision plus the grant that produced it
- OwnershipCache: optional Redis cache of ownership sets
"""

from marketplace.entitlements.cache import OwnershipCache
from marketplace.entitlements.models import AccessDecision, OwnershipSets
from marketplace.entitlements.service import EntitlementEngine

__all__ = [
    "AccessDecision",
    "EntitlementEngine",
    "OwnershipCache",
    "OwnershipSets",
]
