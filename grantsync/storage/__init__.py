"""Storage module - PostgreSQL connection management."""

from grantsync.storage.database import Database

__all__ = ["Database"]
