"""Conversion of running aggregates into persisted snapshots."""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..schemas.stats import ContentPoint, CountryPoint, DailyPoint, Snapshot
from .aggregator import RunningAggregate


logger = logging.getLogger(__name__)


TOP_CONTENT_LIMIT = 20


@dataclass(frozen=True)
class GrossExposurePolicy:
    """Which snapshot scopes may carry gross revenue figures.

    Presentation only: net figures are identical either way.
    """

    channel: bool = False
    owner: bool = False

    def allows(self, scope: str) -> bool:
        return self.owner if scope == "owner" else self.channel


def _day_sort_key(day: str) -> tuple[int, int, str]:
    try:
        return (0, date.fromisoformat(day).toordinal(), day)
    except ValueError:
        return (1, 0, day)


def build_snapshot(
    aggregate: RunningAggregate,
    scope: str,
    synced_at: datetime,
    policy: Optional[GrossExposurePolicy] = None,
    top_content_limit: int = TOP_CONTENT_LIMIT,
) -> Snapshot:
    """Build the final report for one channel or owner aggregate.

    Args:
        aggregate: Running totals for the key
        scope: 'owner' or 'channel'
        synced_at: Batch timestamp shared by every snapshot of the batch
        policy: Gross exposure policy (gross hidden by default)
        top_content_limit: Cap on topContent entries

    Returns:
        Snapshot with sorted daily series and ranked breakdowns
    """
    policy = policy or GrossExposurePolicy()
    expose_gross = policy.allows(scope)

    daily_series = [
        DailyPoint(
            date=day,
            views=bucket.views,
            premium_views=bucket.premium_views,
            net_revenue=bucket.net_revenue,
            gross_revenue=bucket.gross_revenue if expose_gross else None,
        )
        for day, bucket in sorted(
            aggregate.by_day.items(), key=lambda item: _day_sort_key(item[0])
        )
    ]

    top_countries = [
        CountryPoint(
            country_code=country,
            views=bucket.views,
            net_revenue=bucket.net_revenue,
        )
        for country, bucket in sorted(
            aggregate.by_country.items(),
            key=lambda item: item[1].views,
            reverse=True,
        )
    ]

    # sorted() is stable under reverse=True, ties keep insertion order
    ranked_content = sorted(
        aggregate.by_content.items(),
        key=lambda item: item[1].net_revenue,
        reverse=True,
    )
    top_content = [
        ContentPoint(label=label, views=bucket.views, net_revenue=bucket.net_revenue)
        for label, bucket in ranked_content[:top_content_limit]
    ]

    totals = aggregate.totals
    return Snapshot(
        scope=scope,
        key=aggregate.key,
        total_views=totals.views,
        total_premium_views=totals.premium_views,
        total_net_revenue=totals.net_revenue,
        total_gross_revenue=totals.gross_revenue if expose_gross else None,
        daily_series=daily_series,
        top_countries=top_countries,
        top_content=top_content,
        last_synced_at=synced_at,
    )


def build_snapshots(
    aggregates: dict[str, RunningAggregate],
    scope: str,
    synced_at: datetime,
    policy: Optional[GrossExposurePolicy] = None,
    top_content_limit: int = TOP_CONTENT_LIMIT,
) -> dict[str, Snapshot]:
    """Build snapshots for every aggregate that saw at least one row."""
    snapshots: dict[str, Snapshot] = {}
    for key, aggregate in aggregates.items():
        if aggregate.row_count == 0:
            continue
        snapshots[key] = build_snapshot(
            aggregate, scope, synced_at, policy, top_content_limit
        )
    logger.debug("Built %s %s snapshots", len(snapshots), scope)
    return snapshots
