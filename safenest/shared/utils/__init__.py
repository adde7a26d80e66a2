"""Shared utilities for SafeNest services."""
from .clock import Clock, utc_now
from .pii import configure_pii_salt, hash_pii

__all__ = [
    "Clock",
    "utc_now",
    "configure_pii_salt",
    "hash_pii",
]
