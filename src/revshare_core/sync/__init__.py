"""Sync batch orchestration: ownership fetch, aggregation, persistence."""
from .service import (
    SyncReport,
    SyncService,
    compute_batch,
    stats_store_from_env,
    sync_service_from_env,
)

__all__ = [
    "SyncReport",
    "SyncService",
    "compute_batch",
    "stats_store_from_env",
    "sync_service_from_env",
]
