"""Alerting and structured log signals."""
