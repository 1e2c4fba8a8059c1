"""Idempotent, transactional event processing for the WMS API."""

__version__ = "1.0.0"
