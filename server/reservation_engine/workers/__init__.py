"""Background workers and expiry scheduling."""

from .expiry_scheduler import AsyncioExpiryScheduler, ExpiryScheduler

__all__ = ["AsyncioExpiryScheduler", "ExpiryScheduler"]
