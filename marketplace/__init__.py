"""Digital asset marketplace: catalog hierarchy, entitlements, pricing and purchases."""

__version__ = "0.1.0"
