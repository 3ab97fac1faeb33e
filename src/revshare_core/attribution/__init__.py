"""Revenue attribution & aggregation engine.

Turns analytics export rows into per-owner and per-channel snapshots:
- Row normalization (garbled numerics -> 0)
- Ownership resolution (channel -> owner + revenue share)
- Aggregation with inline net revenue calculation
- Snapshot building (daily series, top countries, top content)
"""
from .aggregator import AggregationEngine, RunningAggregate, aggregate_rows
from .exceptions import (
    OwnershipUnavailableError,
    RevshareError,
    SyncLockedError,
)
from .normalizer import UsageRow, normalize_row
from .ownership import ChannelBinding, OwnerRecord, OwnershipResolver
from .revenue import calculate_net_revenue
from .snapshots import GrossExposurePolicy, build_snapshot

__all__ = [
    "AggregationEngine",
    "ChannelBinding",
    "GrossExposurePolicy",
    "OwnerRecord",
    "OwnershipResolver",
    "OwnershipUnavailableError",
    "RevshareError",
    "RunningAggregate",
    "SyncLockedError",
    "UsageRow",
    "aggregate_rows",
    "build_snapshot",
    "calculate_net_revenue",
    "normalize_row",
]
