"""HTTP surface for the marketplace engine."""
