"""Stats store: persisted owner and channel snapshots.

Persists to SQLite: data/revshare.db
"""
from .schema import init_database
from .store import KeyResult, StatsStore

__all__ = [
    "KeyResult",
    "StatsStore",
    "init_database",
]
