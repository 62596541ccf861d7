"""Effective prices and bundle previews."""

from marketplace.pricing.service import CartQuote, PriceQuote, PriceResolver

__all__ = ["CartQuote", "PriceQuote", "PriceResolver"]
