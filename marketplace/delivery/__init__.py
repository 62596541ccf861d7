"""Delivery availability for entitled users."""

from marketplace.delivery.service import DeliveryInfo, DeliveryService

__all__ = ["DeliveryInfo", "DeliveryService"]
