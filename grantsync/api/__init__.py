"""
FastAPI service for the program catalog.

Provides:
- GET /cron/sync-programs - Scheduler-triggered sync of all registries
- POST /matching, GET /matching/{customerId} - Customer matching
- GET /programs - Catalog listing
- GET /sync/status - Per-registry sync status
- GET /health - Service health check
"""

from grantsync.api.app import create_app

__all__ = ["create_app"]
