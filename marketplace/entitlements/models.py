from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Literal, Mapping, Optional, Set

from marketplace.ledger.store import OwnershipRow
from marketplace.models.base import MediaCategory
from marketplace.models.purchase import PurchaseItemKind

DecisionSource = Literal["leaf", "coverage", "folder", "ledger", "deny", "anonymous", "error"]

_EMPTY: FrozenSet[str] = frozenset()


def _freeze(sets: Mapping[MediaCategory, Iterable[str]]) -> Mapping[MediaCategory, FrozenSet[str]]:
    return MappingProxyType({category: frozenset(ids) for category, ids in sets.items() if ids})


@dataclass(frozen=True)
class OwnershipSets:
    """
    Everything one user owns, partitioned by media category.

    leaf_ids: leaves bought directly.
    folder_ids: folders bought as bundles (cascade to all descendants).
    covered_leaf_ids: leaves a bought folder contained at purchase time.
    """

    user_id: str
    leaf_ids: Mapping[MediaCategory, FrozenSet[str]] = field(default_factory=dict)
    folder_ids: Mapping[MediaCategory, FrozenSet[str]] = field(default_factory=dict)
    covered_leaf_ids: Mapping[MediaCategory, FrozenSet[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "leaf_ids", _freeze(self.leaf_ids))
        object.__setattr__(self, "folder_ids", _freeze(self.folder_ids))
        object.__setattr__(self, "covered_leaf_ids", _freeze(self.covered_leaf_ids))

    @classmethod
    def from_rows(cls, user_id: str, rows: Iterable[OwnershipRow]) -> "OwnershipSets":
        leaves: Dict[MediaCategory, Set[str]] = {}
        folders: Dict[MediaCategory, Set[str]] = {}
        covered: Dict[MediaCategory, Set[str]] = {}
        for row in rows:
            if row.kind == PurchaseItemKind.LEAF:
                leaves.setdefault(row.media_category, set()).add(row.target_id)
                continue
            folders.setdefault(row.media_category, set()).add(row.target_id)
            if row.covered_leaf_id:
                covered.setdefault(row.media_category, set()).add(row.covered_leaf_id)
        return cls(user_id=user_id, leaf_ids=leaves, folder_ids=folders, covered_leaf_ids=covered)

    def leaves(self, category: MediaCategory) -> FrozenSet[str]:
        return self.leaf_ids.get(category, _EMPTY)

    def folders(self, category: MediaCategory) -> FrozenSet[str]:
        return self.folder_ids.get(category, _EMPTY)

    def covered(self, category: MediaCategory) -> FrozenSet[str]:
        return self.covered_leaf_ids.get(category, _EMPTY)

    def owns_any(self, target_id: str) -> bool:
        """True if target_id was bought, or covered by a bought folder, in any category."""
        return any(
            target_id in ids
            for sets in (self.leaf_ids, self.folder_ids, self.covered_leaf_ids)
            for ids in sets.values()
        )

    def is_empty(self) -> bool:
        return not self.leaf_ids and not self.folder_ids


@dataclass(frozen=True)
class AccessDecision:
    """Resolution for a single node."""

    node_id: str
    granted: bool
    source: DecisionSource
    via_folder_id: Optional[str] = None
