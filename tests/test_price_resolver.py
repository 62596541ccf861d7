"""
Price Resolver tests: effective prices, bundle savings (negative included)
and cart quotes.
"""

import uuid
from decimal import Decimal

import pytest

from marketplace.models.base import MediaCategory
from marketplace.platform.errors import InvalidArgumentError, NotFoundError
from marketplace.pricing.service import PriceResolver


@pytest.fixture
def resolver(catalog):
    return PriceResolver(catalog)


class TestQuote:

    def test_leaf_quote_uses_discount(self, resolver, video_catalog):
        quote = resolver.quote(video_catalog.leaf_b.id)

        assert quote.kind == "leaf"
        assert quote.amount == Decimal("180")
        assert quote.base_price == Decimal("200")
        assert quote.discount_price == Decimal("180")
        assert quote.purchasable is True
        assert quote.bundle_savings is None

    def test_leaf_without_discount(self, resolver, video_catalog):
        quote = resolver.quote(video_catalog.leaf_a.id)
        assert quote.amount == Decimal("150")
        assert quote.discount_price is None

    def test_bundle_priced_above_leaves_reports_negative_savings(self, resolver, video_catalog):
        # Leaves sum to 150 + 180 = 330; the bundle costs 400
        quote = resolver.quote(video_catalog.bundle.id)

        assert quote.amount == Decimal("400")
        assert quote.leaf_total == Decimal("330")
        assert quote.leaf_count == 2
        assert quote.bundle_savings == Decimal("-70")
        assert quote.misconfigured is True

    def test_bundle_with_positive_savings(self, catalog, resolver, video_catalog):
        catalog.update_prices(video_catalog.bundle.id, base_price=Decimal("300"))

        quote = resolver.quote(video_catalog.bundle.id)
        assert quote.bundle_savings == Decimal("30")
        assert quote.misconfigured is False

    def test_savings_follow_live_leaf_prices(self, catalog, resolver, video_catalog):
        catalog.create_leaf(parent_id=video_catalog.bundle.id, title="Haldi Invite C", base_price=Decimal("120"))

        quote = resolver.quote(video_catalog.bundle.id)
        assert quote.leaf_total == Decimal("450")
        assert quote.bundle_savings == Decimal("50")

    def test_non_purchasable_folder(self, resolver, video_catalog):
        quote = resolver.quote(video_catalog.root.id)

        assert quote.purchasable is False
        assert quote.bundle_savings is None
        assert quote.misconfigured is False

    def test_empty_bundle_is_all_negative_savings(self, catalog, resolver):
        empty = catalog.create_folder(
            media_category=MediaCategory.AUDIO,
            name="Coming soon",
            is_purchasable=True,
            base_price=Decimal("49"),
        )

        quote = resolver.quote(empty.id)
        assert quote.leaf_count == 0
        assert quote.bundle_savings == Decimal("-49")

    def test_unknown_node(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.quote(str(uuid.uuid4()))

    def test_malformed_id(self, resolver):
        with pytest.raises(InvalidArgumentError):
            resolver.quote("leaf-1")


class TestCart:

    def test_cart_subtotal_and_dedupe(self, resolver, video_catalog):
        cart = resolver.quote_cart([
            video_catalog.leaf_a.id,
            video_catalog.leaf_b.id,
            video_catalog.leaf_a.id,
        ])

        assert [q.node_id for q in cart.items] == [video_catalog.leaf_a.id, video_catalog.leaf_b.id]
        assert cart.subtotal == Decimal("330")

    def test_cart_with_unknown_node(self, resolver, video_catalog):
        with pytest.raises(NotFoundError):
            resolver.quote_cart([video_catalog.leaf_a.id, str(uuid.uuid4())])
