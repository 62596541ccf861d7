"""
Price Resolver: the price a user currently sees for a node.

Independent of ownership; this module never reads the purchase ledger.
Bundle savings are reported as computed, negative values included; callers
decide what to do with a misconfigured bundle.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.catalog.store import CatalogStore
from marketplace.models.base import MediaCategory, normalize_id
from marketplace.models.catalog import CatalogNode, Folder, effective_price
from marketplace.platform.errors import NotFoundError


@dataclass(frozen=True)
class PriceQuote:
    node_id: str
    kind: str
    media_category: MediaCategory
    title: str
    amount: Decimal
    base_price: Decimal
    discount_price: Optional[Decimal]
    purchasable: bool
    bundle_savings: Optional[Decimal] = None
    leaf_total: Optional[Decimal] = None
    leaf_count: Optional[int] = None

    @property
    def misconfigured(self) -> bool:
        """A bundle that costs more than buying its leaves one by one."""
        return self.bundle_savings is not None and self.bundle_savings < 0


@dataclass
class CartQuote:
    items: List[PriceQuote] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        return sum((quote.amount for quote in self.items), Decimal("0"))


class PriceResolver:
    """Effective prices and bundle previews for catalog nodes."""

    def __init__(self, catalog: CatalogStore, hierarchy: Optional[HierarchyResolver] = None):
        self.catalog = catalog
        self.hierarchy = hierarchy or HierarchyResolver(catalog)

    def quote(self, node_id: str) -> PriceQuote:
        node_id = normalize_id(node_id, "node_id")
        node = self.hierarchy.node(node_id)
        if node is None:
            raise NotFoundError("Catalog node", node_id)
        return self.quote_node(node)

    def quote_node(self, node: CatalogNode) -> PriceQuote:
        amount = effective_price(node)
        discount = Decimal(node.discount_price) if node.discount_price is not None else None
        base = Decimal(node.base_price or 0)

        if not isinstance(node, Folder):
            return PriceQuote(
                node_id=node.id,
                kind=node.kind,
                media_category=node.media_category,
                title=node.title,
                amount=amount,
                base_price=base,
                discount_price=discount,
                purchasable=True,
            )

        if not node.is_purchasable:
            return PriceQuote(
                node_id=node.id,
                kind=node.kind,
                media_category=node.media_category,
                title=node.title,
                amount=amount,
                base_price=base,
                discount_price=discount,
                purchasable=False,
            )

        leaf_total = Decimal("0")
        leaf_count = 0
        for leaf in self.hierarchy.descendant_leaves(node.id):
            leaf_total += effective_price(leaf)
            leaf_count += 1

        return PriceQuote(
            node_id=node.id,
            kind=node.kind,
            media_category=node.media_category,
            title=node.title,
            amount=amount,
            base_price=base,
            discount_price=discount,
            purchasable=True,
            bundle_savings=leaf_total - amount,
            leaf_total=leaf_total,
            leaf_count=leaf_count,
        )

    def quote_cart(self, node_ids: Iterable[str]) -> CartQuote:
        """Quote several nodes; duplicates are quoted once."""
        ids = list(dict.fromkeys(normalize_id(node_id, "node_id") for node_id in node_ids))
        self.hierarchy.prefetch(ids)
        return CartQuote(items=[self.quote(node_id) for node_id in ids])
