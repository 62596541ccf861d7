"""
Hierarchy Resolver: ancestor chains, descendant leaves and breadcrumbs.

Walks the catalog arena through parent_id back-references. Lookups are
memoized in a per-instance arena, so one resolver should live for one
request only; nothing is shared across requests.

Stored data is not trusted to be a clean tree:
- a folder whose parent was deleted is treated as its own root;
- a cycle or a category change along a chain ends the walk (logged).
"""

import logging
from collections import deque
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from marketplace.catalog.store import CatalogStore
from marketplace.models.base import MediaCategory, normalize_id
from marketplace.models.catalog import CatalogNode, Folder, LeafAsset
from marketplace.platform.errors import NotFoundError

logger = logging.getLogger(__name__)


class HierarchyResolver:
    """Per-request view over the catalog tree."""

    def __init__(self, catalog: CatalogStore):
        self.catalog = catalog
        # id -> row, or None when the id is known to be absent
        self._folders: Dict[str, Optional[Folder]] = {}
        self._nodes: Dict[str, Optional[CatalogNode]] = {}

    # =========================================================================
    # Arena
    # =========================================================================

    def node(self, node_id: str) -> Optional[CatalogNode]:
        if node_id not in self._nodes:
            node = self.catalog.get_node(node_id)
            self._nodes[node_id] = node
            if isinstance(node, Folder):
                self._folders[node_id] = node
        return self._nodes[node_id]

    def _folder(self, folder_id: str) -> Optional[Folder]:
        if folder_id not in self._folders:
            self._folders[folder_id] = self.catalog.get_folder(folder_id)
        return self._folders[folder_id]

    def prefetch(self, node_ids: Iterable[str]) -> None:
        """
        Load nodes and all their ancestor folders into the arena.

        One query per tree level instead of one per node, so bulk checks over
        many siblings cost roughly the depth of the tree.
        """
        wanted = {node_id for node_id in node_ids if node_id not in self._nodes}
        if wanted:
            found = self.catalog.get_nodes(wanted)
            for node_id in wanted:
                node = found.get(node_id)
                self._nodes[node_id] = node
                if isinstance(node, Folder):
                    self._folders[node_id] = node

        frontier = {
            node.parent_id
            for node in self._nodes.values()
            if node is not None and node.parent_id and node.parent_id not in self._folders
        }
        while frontier:
            loaded = self.catalog.get_folders(frontier)
            for folder_id in frontier:
                self._folders[folder_id] = loaded.get(folder_id)
            frontier = {
                folder.parent_id
                for folder in loaded.values()
                if folder.parent_id and folder.parent_id not in self._folders
            }

    # =========================================================================
    # Ancestors
    # =========================================================================

    def chain_of(self, node: CatalogNode) -> Tuple[List[Folder], Optional[str]]:
        """
        Ancestor folders of a loaded node, nearest first, plus a dangling id.

        For a folder the chain starts with the folder itself; for a leaf it
        starts with its parent. The dangling id is the parent id at which the
        chain broke because that folder no longer exists (None otherwise).
        """
        category = node.media_category
        chain: List[Folder] = []
        seen = set()

        if isinstance(node, Folder):
            current_id: Optional[str] = node.id
            current: Optional[Folder] = node
        else:
            current_id = node.parent_id
            current = self._folder(current_id) if current_id else None

        while current_id:
            if current is None:
                return chain, current_id
            if current.id in seen:
                logger.warning(
                    "hierarchy.cycle_detected",
                    extra={"node_id": node.id, "folder_id": current.id},
                )
                break
            if current.media_category != category:
                logger.warning(
                    "hierarchy.category_mismatch",
                    extra={
                        "node_id": node.id,
                        "folder_id": current.id,
                        "expected": category.value,
                        "found": current.media_category.value,
                    },
                )
                break
            chain.append(current)
            seen.add(current.id)
            current_id = current.parent_id
            current = self._folder(current_id) if current_id else None

        return chain, None

    def ancestors(self, node_id: str) -> List[Folder]:
        """Ordered chain node -> ... -> category root. Raises NotFoundError for unknown nodes."""
        node_id = normalize_id(node_id, "node_id")
        node = self.node(node_id)
        if node is None:
            raise NotFoundError("Catalog node", node_id)
        chain, _ = self.chain_of(node)
        return chain

    def ancestor_ids(self, node_id: str) -> List[str]:
        """Like ancestors(), as ids, with the dangling parent id appended if the chain is broken."""
        node_id = normalize_id(node_id, "node_id")
        node = self.node(node_id)
        if node is None:
            raise NotFoundError("Catalog node", node_id)
        return self.ancestor_ids_of(node)

    def ancestor_ids_of(self, node: CatalogNode) -> List[str]:
        chain, dangling = self.chain_of(node)
        ids = [folder.id for folder in chain]
        if dangling:
            ids.append(dangling)
        return ids

    def path(self, node_id: str) -> List[Folder]:
        """Breadcrumb folders from the category root down to the node (or its parent, for a leaf)."""
        return list(reversed(self.ancestors(node_id)))

    def is_descendant(self, candidate_id: str, folder_id: str) -> bool:
        """True if candidate_id lies strictly below folder_id."""
        candidate_id = normalize_id(candidate_id, "candidate_id")
        folder_id = normalize_id(folder_id, "folder_id")
        if candidate_id == folder_id:
            return False
        node = self.node(candidate_id)
        if node is None:
            return False
        return folder_id in self.ancestor_ids_of(node)

    # =========================================================================
    # Descendants
    # =========================================================================

    def descendant_leaves(self, folder_id: str) -> Iterator[LeafAsset]:
        """
        Lazily yield every leaf below a folder, breadth first.

        Each call returns a fresh generator; there is no cursor to reset.
        """
        folder_id = normalize_id(folder_id, "folder_id")
        folder = self._folder(folder_id)
        if folder is None:
            raise NotFoundError("Folder", folder_id)
        return self._walk_leaves(folder.id, folder.media_category)

    def leaves_under(self, folder_id: str, category: MediaCategory) -> Iterator[LeafAsset]:
        """
        Like descendant_leaves(), but walks parent_id links only.

        The folder row itself need not exist: children of a deleted folder
        still point at its id.
        """
        return self._walk_leaves(normalize_id(folder_id, "folder_id"), category)

    def _walk_leaves(self, root_id: str, category: MediaCategory) -> Iterator[LeafAsset]:
        queue = deque([root_id])
        seen = {root_id}
        while queue:
            folder_id = queue.popleft()
            for leaf in self.catalog.leaves_in(folder_id):
                if leaf.media_category == category:
                    yield leaf
            for child in self.catalog.child_folders(folder_id):
                if child.id in seen or child.media_category != category:
                    continue
                seen.add(child.id)
                queue.append(child.id)
