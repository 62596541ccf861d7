"""
Hierarchy Resolver tests: ancestor chains, breadcrumbs and descendant walks
over imperfect stored data (orphans, cycles).
"""

import uuid
from decimal import Decimal

import pytest

from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.models.base import MediaCategory
from marketplace.models.catalog import Folder
from marketplace.platform.errors import InvalidArgumentError, NotFoundError


@pytest.fixture
def resolver(catalog):
    return HierarchyResolver(catalog)


# ============================================================================
# Ancestors and paths
# ============================================================================

class TestAncestors:

    def test_leaf_chain_nearest_first(self, resolver, video_catalog):
        chain = resolver.ancestors(video_catalog.leaf_a.id)
        assert [f.id for f in chain] == [video_catalog.bundle.id, video_catalog.root.id]

    def test_folder_chain_includes_itself(self, resolver, video_catalog):
        chain = resolver.ancestors(video_catalog.bundle.id)
        assert [f.id for f in chain] == [video_catalog.bundle.id, video_catalog.root.id]

    def test_root_chain(self, resolver, video_catalog):
        assert [f.id for f in resolver.ancestors(video_catalog.root.id)] == [video_catalog.root.id]

    def test_path_is_root_first(self, resolver, video_catalog):
        path = resolver.path(video_catalog.leaf_b.id)
        assert [f.name for f in path] == ["Weddings", "Haldi Invitations"]

    def test_unknown_node_raises_not_found(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.ancestors(str(uuid.uuid4()))

    def test_malformed_id_raises_invalid_argument(self, resolver):
        with pytest.raises(InvalidArgumentError):
            resolver.ancestors("folder-1")

    def test_orphaned_subtree_is_its_own_root(self, catalog, video_catalog):
        root_id = video_catalog.root.id
        bundle_id = video_catalog.bundle.id
        leaf_id = video_catalog.leaf_a.id
        catalog.delete_folder(root_id)

        resolver = HierarchyResolver(catalog)
        assert [f.id for f in resolver.ancestors(leaf_id)] == [bundle_id]
        # Dangling parent id is still reported for grant matching
        assert resolver.ancestor_ids(leaf_id) == [bundle_id, root_id]

    def test_cycle_in_stored_data_terminates(self, db_session, catalog, video_catalog):
        # Bypass the store's cycle check to simulate corrupt data
        root = db_session.query(Folder).filter(Folder.id == video_catalog.root.id).one()
        root.parent_id = video_catalog.bundle.id
        db_session.commit()

        chain = HierarchyResolver(catalog).ancestors(video_catalog.leaf_a.id)
        assert [f.id for f in chain] == [video_catalog.bundle.id, video_catalog.root.id]

    def test_is_descendant(self, resolver, video_catalog):
        assert resolver.is_descendant(video_catalog.leaf_a.id, video_catalog.root.id) is True
        assert resolver.is_descendant(video_catalog.bundle.id, video_catalog.root.id) is True
        assert resolver.is_descendant(video_catalog.root.id, video_catalog.bundle.id) is False
        assert resolver.is_descendant(video_catalog.root.id, video_catalog.root.id) is False
        assert resolver.is_descendant(str(uuid.uuid4()), video_catalog.root.id) is False

    def test_prefetch_loads_chain_in_bulk(self, catalog, video_catalog):
        resolver = HierarchyResolver(catalog)
        resolver.prefetch([video_catalog.leaf_a.id, video_catalog.leaf_b.id])

        calls = []
        catalog.get_folder = lambda folder_id: calls.append(folder_id)
        catalog.get_node = lambda node_id: calls.append(node_id)

        assert [f.id for f in resolver.ancestors(video_catalog.leaf_b.id)] == [
            video_catalog.bundle.id,
            video_catalog.root.id,
        ]
        assert calls == []


# ============================================================================
# Descendants
# ============================================================================

class TestDescendantLeaves:

    def test_collects_nested_leaves(self, catalog, resolver, video_catalog):
        sub = catalog.create_folder(
            media_category=MediaCategory.VIDEO,
            name="Extras",
            parent_id=video_catalog.bundle.id,
        )
        nested = catalog.create_leaf(parent_id=sub.id, title="Bonus", base_price=Decimal("50"))

        ids = {leaf.id for leaf in resolver.descendant_leaves(video_catalog.root.id)}
        assert ids == {video_catalog.leaf_a.id, video_catalog.leaf_b.id, nested.id}

    def test_is_lazy_and_restartable(self, resolver, video_catalog):
        first = resolver.descendant_leaves(video_catalog.bundle.id)
        assert next(first).id in {video_catalog.leaf_a.id, video_catalog.leaf_b.id}

        # A second call starts over, independent of the first generator
        assert len(list(resolver.descendant_leaves(video_catalog.bundle.id))) == 2
        assert len(list(first)) == 1

    def test_empty_folder(self, catalog, resolver):
        empty = catalog.create_folder(media_category=MediaCategory.PICTURE, name="Empty")
        assert list(resolver.descendant_leaves(empty.id)) == []

    def test_unknown_folder_raises(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.descendant_leaves(str(uuid.uuid4()))

    def test_leaf_is_not_a_folder(self, resolver, video_catalog):
        with pytest.raises(NotFoundError):
            resolver.descendant_leaves(video_catalog.leaf_a.id)

    def test_cycle_does_not_loop_forever(self, db_session, catalog, video_catalog):
        root = db_session.query(Folder).filter(Folder.id == video_catalog.root.id).one()
        root.parent_id = video_catalog.bundle.id
        db_session.commit()

        leaves = list(HierarchyResolver(catalog).descendant_leaves(video_catalog.root.id))
        assert len(leaves) == 2

    def test_leaves_under_deleted_folder(self, catalog, video_catalog):
        bundle_id = video_catalog.bundle.id
        sub = catalog.create_folder(media_category=MediaCategory.VIDEO, name="Reception", parent_id=bundle_id)
        nested = catalog.create_leaf(parent_id=sub.id, title="Reception Invite", base_price=Decimal("60"))
        expected = {video_catalog.leaf_a.id, video_catalog.leaf_b.id, nested.id}

        catalog.delete_folder(bundle_id)
        resolver = HierarchyResolver(catalog)

        with pytest.raises(NotFoundError):
            resolver.descendant_leaves(bundle_id)
        assert {leaf.id for leaf in resolver.leaves_under(bundle_id, MediaCategory.VIDEO)} == expected
        assert list(resolver.leaves_under(bundle_id, MediaCategory.AUDIO)) == []
