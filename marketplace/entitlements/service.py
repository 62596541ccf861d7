"""
Entitlement evaluation: the single source of truth for "can user U access node N".

Resolution order for a node in category C:
1. anonymous caller -> deny (never an error)
2. leaf bought directly in C -> grant
3. leaf covered by a folder purchase recorded in C -> grant
4. any ancestor folder (the node itself, if a folder) bought in C -> grant
5. deny

A node that no longer exists in the catalog is granted iff the ledger shows
it was bought; availability is the delivery layer's concern.

Ownership sets are built once per call from a single ledger aggregation
query, for single and bulk checks alike. Storage failures fail closed and
are logged as evaluation failures, distinct from ordinary denials.
"""

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.catalog.store import CatalogStore
from marketplace.entitlements.cache import OwnershipCache
from marketplace.entitlements.models import AccessDecision, OwnershipSets
from marketplace.ledger.store import PurchaseLedger
from marketplace.models.base import MediaCategory, normalize_id
from marketplace.models.catalog import LeafAsset
from marketplace.monitoring.entitlement_alerts import emit_denied, emit_evaluation_failure

logger = logging.getLogger(__name__)


def _normalize_user_id(user_id: Optional[str]) -> Optional[str]:
    if user_id is None:
        return None
    normalized = str(user_id).strip()
    return normalized or None


class EntitlementEngine:
    """Per-request entitlement checks over the catalog and the ledger."""

    def __init__(
        self,
        db: Session,
        *,
        cache: Optional[OwnershipCache] = None,
        catalog: Optional[CatalogStore] = None,
        ledger: Optional[PurchaseLedger] = None,
    ) -> None:
        self.catalog = catalog or CatalogStore(db)
        self.ledger = ledger or PurchaseLedger(db)
        self.cache = cache if cache is not None else OwnershipCache()

    # =========================================================================
    # Ownership
    # =========================================================================

    def ownership(self, user_id: str) -> OwnershipSets:
        """Cache hit, or one aggregation query over the user's purchases."""
        # Generation is read before the ledger so a concurrent commit makes this write stale
        generation = self.cache.generation(user_id)
        cached = self.cache.get(user_id, generation)
        if cached is not None:
            return cached
        ownership = OwnershipSets.from_rows(user_id, self.ledger.ownership_rows(user_id))
        self.cache.set(ownership, generation)
        return ownership

    # =========================================================================
    # Single and bulk checks
    # =========================================================================

    def has_access(self, user_id: Optional[str], node_id: str) -> bool:
        return self.explain(user_id, node_id).granted

    def has_access_bulk(self, user_id: Optional[str], node_ids: Iterable[str]) -> Dict[str, bool]:
        """Map each requested id to its decision; ownership is built exactly once."""
        requested = list(node_ids)
        decisions = self.explain_bulk(user_id, requested)
        return {
            node_id: decisions[normalize_id(node_id, "node_id")].granted
            for node_id in requested
        }

    def explain(self, user_id: Optional[str], node_id: str) -> AccessDecision:
        node_id = normalize_id(node_id, "node_id")
        return self.explain_bulk(user_id, [node_id])[node_id]

    def explain_bulk(self, user_id: Optional[str], node_ids: Iterable[str]) -> Dict[str, AccessDecision]:
        """
        Decisions keyed by canonical node id.

        Raises InvalidArgumentError for malformed ids before touching storage.
        """
        ids = list(dict.fromkeys(normalize_id(node_id, "node_id") for node_id in node_ids))
        user = _normalize_user_id(user_id)
        if user is None:
            return {node_id: AccessDecision(node_id, False, "anonymous") for node_id in ids}
        if not ids:
            return {}

        try:
            ownership = self.ownership(user)
            if ownership.is_empty():
                decisions = {node_id: AccessDecision(node_id, False, "deny") for node_id in ids}
            else:
                resolver = HierarchyResolver(self.catalog)
                resolver.prefetch(ids)
                decisions = {node_id: self._decide(ownership, resolver, node_id) for node_id in ids}
        except SQLAlchemyError as exc:
            for node_id in ids:
                emit_evaluation_failure(user, node_id, str(exc))
            return {node_id: AccessDecision(node_id, False, "error") for node_id in ids}

        for decision in decisions.values():
            if not decision.granted:
                emit_denied(user, decision.node_id)
        return decisions

    def _decide(self, ownership: OwnershipSets, resolver: HierarchyResolver, node_id: str) -> AccessDecision:
        node = resolver.node(node_id)
        if node is None:
            # Removed from the catalog after purchase: the ledger is authoritative
            if ownership.owns_any(node_id):
                return AccessDecision(node_id, True, "ledger")
            return AccessDecision(node_id, False, "deny")

        category = node.media_category
        if isinstance(node, LeafAsset):
            if node_id in ownership.leaves(category):
                return AccessDecision(node_id, True, "leaf")
            if node_id in ownership.covered(category):
                return AccessDecision(node_id, True, "coverage")

        owned_folders = ownership.folders(category)
        if owned_folders:
            for folder_id in resolver.ancestor_ids_of(node):
                if folder_id in owned_folders:
                    return AccessDecision(node_id, True, "folder", via_folder_id=folder_id)

        return AccessDecision(node_id, False, "deny")

    # =========================================================================
    # Listings
    # =========================================================================

    def owned_folder_ids(self, user_id: Optional[str], category: MediaCategory) -> FrozenSet[str]:
        user = _normalize_user_id(user_id)
        if user is None:
            return frozenset()
        return self.ownership(user).folders(category)

    def accessible_leaf_ids(self, user_id: Optional[str], category: MediaCategory) -> Set[str]:
        """Every leaf the user can open in one category, including leaves added to owned folders later."""
        user = _normalize_user_id(user_id)
        if user is None:
            return set()

        ownership = self.ownership(user)
        accessible = set(ownership.leaves(category)) | set(ownership.covered(category))
        resolver = HierarchyResolver(self.catalog)
        for folder_id in ownership.folders(category):
            # Walks by parent_id, so subtrees of a deleted owned folder are still listed
            accessible.update(leaf.id for leaf in resolver.leaves_under(folder_id, category))
        return accessible
