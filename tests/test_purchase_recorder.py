"""
Purchase Recorder tests.

CRITICAL: These tests verify:
1. payment_ref is an idempotency key (same payload -> same purchase)
2. Reusing payment_ref with a different payload is rejected
3. Snapshots never change after the catalog is repriced or deleted
4. A lost race on payment_ref resolves to the winner's record
"""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from marketplace.catalog.store import CatalogStore
from marketplace.db_base import Base
from marketplace.entitlements.cache import OwnershipCache
from marketplace.ledger.store import PurchaseLedger
from marketplace.models.base import MediaCategory
from marketplace.models.purchase import Purchase, PurchaseItemKind
from marketplace.platform.errors import (
    DuplicateReferenceError,
    InvalidArgumentError,
    NotFoundError,
)
from marketplace.purchases.recorder import PurchaseItemRequest, PurchaseRecorder, items_fingerprint


@pytest.fixture
def recorder(db_session, no_cache):
    return PurchaseRecorder(db_session, cache=no_cache)


def _items(*pairs):
    return [PurchaseItemRequest(kind=kind, target_id=target_id) for kind, target_id in pairs]


# ============================================================================
# Recording
# ============================================================================

class TestRecord:

    def test_records_leaf_and_folder_items(self, recorder, user_id, video_catalog):
        purchase = recorder.record(
            user_id,
            "pay_001",
            _items(("folder", video_catalog.bundle.id)),
            order_ref="order_001",
        )

        assert purchase.user_id == user_id
        assert purchase.order_ref == "order_001"
        assert purchase.total_amount == Decimal("400")
        assert len(purchase.items) == 1
        item = purchase.items[0]
        assert item.kind == PurchaseItemKind.FOLDER
        assert item.media_category == MediaCategory.VIDEO
        assert item.price_paid == Decimal("400")
        assert item.title == "Haldi Invitations"
        assert {c.leaf_id for c in item.coverage} == {video_catalog.leaf_a.id, video_catalog.leaf_b.id}

    def test_total_defaults_to_subtotal_minus_discount(self, recorder, user_id, video_catalog):
        purchase = recorder.record(
            user_id,
            "pay_002",
            _items(("leaf", video_catalog.leaf_a.id), ("leaf", video_catalog.leaf_b.id)),
            discount_applied=Decimal("30"),
        )

        assert purchase.total_amount == Decimal("300")
        assert purchase.discount_applied == Decimal("30")
        assert [item.position for item in purchase.items] == [0, 1]

    def test_explicit_total_is_kept(self, recorder, user_id, video_catalog):
        purchase = recorder.record(
            user_id,
            "pay_003",
            _items(("leaf", video_catalog.leaf_a.id)),
            total_amount="149.50",
        )
        assert purchase.total_amount == Decimal("149.50")

    def test_snapshot_captures_delivery_fields(self, recorder, user_id, video_catalog):
        purchase = recorder.record(user_id, "pay_004", _items(("leaf", video_catalog.leaf_a.id)))
        item = purchase.items[0]

        assert item.title == "Haldi Invite A"
        assert item.download_url == "https://cdn.example.com/a/download.mp4"


# ============================================================================
# Validation
# ============================================================================

class TestValidation:

    def test_empty_items(self, recorder, user_id):
        with pytest.raises(InvalidArgumentError):
            recorder.record(user_id, "pay_x", [])

    @pytest.mark.parametrize("ref", ["", "   ", None])
    def test_blank_payment_ref(self, recorder, user_id, video_catalog, ref):
        with pytest.raises(InvalidArgumentError):
            recorder.record(user_id, ref, _items(("leaf", video_catalog.leaf_a.id)))

    def test_blank_user(self, recorder, video_catalog):
        with pytest.raises(InvalidArgumentError):
            recorder.record("  ", "pay_x", _items(("leaf", video_catalog.leaf_a.id)))

    def test_unknown_kind(self, recorder, user_id, video_catalog):
        with pytest.raises(InvalidArgumentError):
            recorder.record(user_id, "pay_x", _items(("bundle", video_catalog.bundle.id)))

    def test_malformed_target(self, recorder, user_id):
        with pytest.raises(InvalidArgumentError):
            recorder.record(user_id, "pay_x", _items(("leaf", "abc")))

    def test_duplicate_target(self, recorder, user_id, video_catalog):
        with pytest.raises(InvalidArgumentError):
            recorder.record(
                user_id,
                "pay_x",
                _items(("leaf", video_catalog.leaf_a.id), ("leaf", video_catalog.leaf_a.id)),
            )

    def test_unknown_target(self, db_session, recorder, user_id, video_catalog):
        with pytest.raises(NotFoundError):
            recorder.record(
                user_id,
                "pay_x",
                _items(("leaf", video_catalog.leaf_a.id), ("leaf", str(uuid.uuid4()))),
            )
        assert db_session.query(Purchase).count() == 0

    def test_kind_mismatch(self, recorder, user_id, video_catalog):
        with pytest.raises(InvalidArgumentError):
            recorder.record(user_id, "pay_x", _items(("leaf", video_catalog.bundle.id)))

    def test_folder_must_be_purchasable(self, recorder, user_id, video_catalog):
        with pytest.raises(InvalidArgumentError):
            recorder.record(user_id, "pay_x", _items(("folder", video_catalog.root.id)))

    def test_discount_above_subtotal(self, recorder, user_id, video_catalog):
        with pytest.raises(InvalidArgumentError):
            recorder.record(
                user_id,
                "pay_x",
                _items(("leaf", video_catalog.leaf_a.id)),
                discount_applied=Decimal("151"),
            )

    def test_negative_total(self, recorder, user_id, video_catalog):
        with pytest.raises(InvalidArgumentError):
            recorder.record(
                user_id,
                "pay_x",
                _items(("leaf", video_catalog.leaf_a.id)),
                total_amount=Decimal("-1"),
            )


# ============================================================================
# Idempotency
# ============================================================================

class TestIdempotency:

    def test_replay_returns_same_purchase(self, db_session, recorder, user_id, video_catalog):
        first = recorder.record(user_id, "pay_dup", _items(("leaf", video_catalog.leaf_a.id), ("leaf", video_catalog.leaf_b.id)))
        # Item order does not matter for the payload identity
        second = recorder.record(user_id, "pay_dup", _items(("leaf", video_catalog.leaf_b.id), ("leaf", video_catalog.leaf_a.id)))

        assert second.id == first.id
        assert db_session.query(Purchase).count() == 1

    def test_conflicting_payload_raises(self, recorder, user_id, video_catalog):
        first = recorder.record(user_id, "pay_dup", _items(("leaf", video_catalog.leaf_a.id)))

        with pytest.raises(DuplicateReferenceError) as exc:
            recorder.record(user_id, "pay_dup", _items(("leaf", video_catalog.leaf_b.id)))

        assert exc.value.status_code == 409
        assert exc.value.details["purchase_id"] == first.id

    def test_same_items_other_user_conflicts(self, recorder, user_id, other_user_id, video_catalog):
        recorder.record(user_id, "pay_dup", _items(("leaf", video_catalog.leaf_a.id)))

        with pytest.raises(DuplicateReferenceError):
            recorder.record(other_user_id, "pay_dup", _items(("leaf", video_catalog.leaf_a.id)))

    def test_fingerprint_is_order_independent(self, video_catalog):
        a = (PurchaseItemKind.LEAF, video_catalog.leaf_a.id)
        b = (PurchaseItemKind.LEAF, video_catalog.leaf_b.id)
        assert items_fingerprint("u1", [a, b]) == items_fingerprint("u1", [b, a])
        assert items_fingerprint("u1", [a]) != items_fingerprint("u2", [a])

    def test_lost_race_resolves_to_winner(self, db_session, no_cache, user_id, video_catalog):
        winner = PurchaseRecorder(db_session, cache=no_cache).record(
            user_id, "pay_race", _items(("leaf", video_catalog.leaf_a.id))
        )

        # Simulate the racing writer: the pre-check misses, the insert conflicts
        ledger = PurchaseLedger(db_session)
        real_lookup = ledger.get_by_payment_ref
        lookups = []

        def lookup(ref):
            lookups.append(ref)
            return None if len(lookups) == 1 else real_lookup(ref)

        ledger.get_by_payment_ref = lookup
        ledger.append = MagicMock(side_effect=IntegrityError("INSERT", {}, Exception("unique")))

        loser = PurchaseRecorder(db_session, cache=no_cache, ledger=ledger).record(
            user_id, "pay_race", _items(("leaf", video_catalog.leaf_a.id))
        )

        assert loser.id == winner.id
        assert ledger.append.call_count == 1

    def test_conflict_retries_are_bounded(self, db_session, no_cache, user_id, video_catalog):
        ledger = PurchaseLedger(db_session)
        ledger.get_by_payment_ref = lambda ref: None
        ledger.append = MagicMock(side_effect=IntegrityError("INSERT", {}, Exception("unique")))

        with pytest.raises(IntegrityError):
            PurchaseRecorder(db_session, cache=no_cache, ledger=ledger, max_retries=2).record(
                user_id, "pay_retry", _items(("leaf", video_catalog.leaf_a.id))
            )

        assert ledger.append.call_count == 3

    def test_concurrent_sessions_hit_real_unique_constraint(self, tmp_path, user_id):
        engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        first, second = factory(), factory()
        try:
            catalog = CatalogStore(first)
            folder = catalog.create_folder(media_category=MediaCategory.VIDEO, name="Sangeet")
            leaf_id = catalog.create_leaf(parent_id=folder.id, title="Sangeet Invite", base_price=Decimal("90")).id
            items = _items(("leaf", leaf_id))

            ledger = PurchaseLedger(second)
            real_lookup = ledger.get_by_payment_ref
            lookups = []

            def lookup(ref):
                lookups.append(ref)
                found = real_lookup(ref)
                if len(lookups) == 1:
                    # The other writer commits between the pre-check and the insert
                    PurchaseRecorder(first, cache=OwnershipCache(redis_url="")).record(user_id, ref, items)
                return found

            ledger.get_by_payment_ref = lookup

            loser = PurchaseRecorder(second, cache=OwnershipCache(redis_url=""), ledger=ledger).record(
                user_id, "pay_two_sessions", items
            )

            winner = PurchaseLedger(first).get_by_payment_ref("pay_two_sessions")
            assert loser.id == winner.id
            assert len(lookups) == 2
            assert second.query(Purchase).filter(Purchase.payment_ref == "pay_two_sessions").count() == 1
        finally:
            first.close()
            second.close()
            engine.dispose()


# ============================================================================
# Snapshot immutability
# ============================================================================

class TestSnapshots:

    def test_repricing_does_not_change_recorded_purchase(self, db_session, catalog, recorder, user_id, video_catalog):
        purchase = recorder.record(user_id, "pay_snap", _items(("leaf", video_catalog.leaf_b.id)))
        purchase_id = purchase.id

        catalog.update_prices(video_catalog.leaf_b.id, base_price=Decimal("999"))
        db_session.expire_all()

        stored = PurchaseLedger(db_session).get(purchase_id)
        assert stored.items[0].price_paid == Decimal("180")
        assert stored.total_amount == Decimal("180")

    def test_deleting_node_keeps_snapshot(self, db_session, catalog, recorder, user_id, video_catalog):
        leaf_a_id = video_catalog.leaf_a.id
        purchase = recorder.record(user_id, "pay_snap", _items(("leaf", leaf_a_id)))
        purchase_id = purchase.id

        catalog.delete_leaf(leaf_a_id)
        db_session.expire_all()

        stored = PurchaseLedger(db_session).get(purchase_id)
        assert stored.items[0].title == "Haldi Invite A"
        assert stored.items[0].target_id == leaf_a_id


# ============================================================================
# Cache invalidation
# ============================================================================

class TestCacheInvalidation:

    def test_commit_invalidates_user_entry(self, db_session, user_id, video_catalog):
        cache = MagicMock()
        PurchaseRecorder(db_session, cache=cache).record(user_id, "pay_c", _items(("leaf", video_catalog.leaf_a.id)))

        cache.invalidate.assert_called_once_with(user_id)

    def test_replay_does_not_invalidate(self, db_session, user_id, video_catalog):
        cache = MagicMock()
        recorder = PurchaseRecorder(db_session, cache=cache)
        recorder.record(user_id, "pay_c", _items(("leaf", video_catalog.leaf_a.id)))
        recorder.record(user_id, "pay_c", _items(("leaf", video_catalog.leaf_a.id)))

        assert cache.invalidate.call_count == 1
