"""Catalog storage and hierarchy resolution."""

from marketplace.catalog.hierarchy import HierarchyResolver
from marketplace.catalog.store import CatalogStore

__all__ = ["CatalogStore", "HierarchyResolver"]
