"""Program catalog storage."""

from grantsync.catalog.repository import ProgramRepository

__all__ = ["ProgramRepository"]
