"""Utility modules for swapgate."""

from swapgate.utils.clock import Clock, as_utc, from_timestamp, utcnow

__all__ = ["Clock", "as_utc", "from_timestamp", "utcnow"]
