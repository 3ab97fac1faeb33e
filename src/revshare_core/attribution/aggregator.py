"""Aggregation of resolved usage rows into running totals.

Each row is folded into a channel-level and an owner-level
RunningAggregate; each aggregate also keeps day, country and content
buckets. Folding is plain addition, so row order never changes totals.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from .normalizer import UsageRow
from .ownership import OwnershipResolver
from .revenue import calculate_net_revenue, money_context


logger = logging.getLogger(__name__)


@dataclass
class BucketTotals:
    """The four running sums kept at every granularity."""

    views: int = 0
    premium_views: int = 0
    gross_revenue: Decimal = field(default_factory=Decimal)
    net_revenue: Decimal = field(default_factory=Decimal)

    def add(self, row: UsageRow, net_revenue: Decimal) -> None:
        self.views += row.view_count
        self.premium_views += row.premium_view_count
        self.gross_revenue += row.gross_revenue
        self.net_revenue += net_revenue


@dataclass
class RunningAggregate:
    """Batch-local accumulator for one channel or one owner."""

    key: str
    totals: BucketTotals = field(default_factory=BucketTotals)
    by_day: dict[str, BucketTotals] = field(default_factory=dict)
    by_country: dict[str, BucketTotals] = field(default_factory=dict)
    by_content: dict[str, BucketTotals] = field(default_factory=dict)
    row_count: int = 0

    def merge(self, row: UsageRow, net_revenue: Decimal) -> None:
        """Fold one priced row into the totals and every bucket."""
        with money_context():
            self.totals.add(row, net_revenue)
            _bucket(self.by_day, row.date).add(row, net_revenue)
            _bucket(self.by_country, row.country_code).add(row, net_revenue)
            _bucket(self.by_content, row.content_label).add(row, net_revenue)
        self.row_count += 1


def _bucket(buckets: dict[str, BucketTotals], key: str) -> BucketTotals:
    bucket = buckets.get(key)
    if bucket is None:
        bucket = BucketTotals()
        buckets[key] = bucket
    return bucket


@dataclass
class BatchAggregates:
    """Output of one aggregation pass."""

    channels: dict[str, RunningAggregate] = field(default_factory=dict)
    owners: dict[str, RunningAggregate] = field(default_factory=dict)
    total_rows: int = 0
    matched_rows: int = 0
    orphaned_rows: int = 0
    orphaned_channel_ids: set[str] = field(default_factory=set)


class AggregationEngine:
    """Folds normalized rows into per-channel and per-owner aggregates."""

    def __init__(self, resolver: OwnershipResolver) -> None:
        self.resolver = resolver
        self.result = BatchAggregates()

    def add(self, row: UsageRow) -> bool:
        """Aggregate one row.

        Returns:
            True if the row was matched to an owner, False if orphaned
        """
        result = self.result
        result.total_rows += 1

        share = self.resolver.resolve(row.channel_external_id)
        if share is None:
            result.orphaned_rows += 1
            result.orphaned_channel_ids.add(row.channel_external_id)
            return False

        net_revenue = calculate_net_revenue(
            row.gross_revenue, share.revenue_share_percent
        )

        channel_agg = result.channels.get(row.channel_external_id)
        if channel_agg is None:
            channel_agg = RunningAggregate(key=row.channel_external_id)
            result.channels[row.channel_external_id] = channel_agg
        channel_agg.merge(row, net_revenue)

        owner_agg = result.owners.get(share.owner_id)
        if owner_agg is None:
            owner_agg = RunningAggregate(key=share.owner_id)
            result.owners[share.owner_id] = owner_agg
        owner_agg.merge(row, net_revenue)

        result.matched_rows += 1
        return True

    def add_all(self, rows: Iterable[UsageRow]) -> BatchAggregates:
        for row in rows:
            self.add(row)
        return self.result


def aggregate_rows(
    rows: Iterable[UsageRow], resolver: OwnershipResolver
) -> BatchAggregates:
    """Aggregate a whole batch against a prebuilt resolver."""
    result = AggregationEngine(resolver).add_all(rows)

    if result.orphaned_rows:
        sample = sorted(result.orphaned_channel_ids)[:5]
        logger.warning(
            "%s rows orphaned across %s unbound channels (e.g. %s)",
            result.orphaned_rows,
            len(result.orphaned_channel_ids),
            ", ".join(repr(channel_id) for channel_id in sample),
        )

    logger.info(
        "Aggregated %s rows: %s matched, %s channels, %s owners",
        result.total_rows,
        result.matched_rows,
        len(result.channels),
        len(result.owners),
    )
    return result
