"""Unit tests for snapshot building."""
import json
from datetime import datetime, timezone
from decimal import Decimal

from src.revshare_core.attribution.aggregator import RunningAggregate
from src.revshare_core.attribution.normalizer import normalize_row
from src.revshare_core.attribution.snapshots import (
    TOP_CONTENT_LIMIT,
    GrossExposurePolicy,
    build_snapshot,
    build_snapshots,
)


SYNCED_AT = datetime(2024, 12, 31, 12, 0, tzinfo=timezone.utc)


def _merge(aggregate, date="2024-12-01", country="US", title="Video", views=0, gross="0", share=Decimal("0.5")):
    row = normalize_row(
        {
            "date": date,
            "channelId": aggregate.key,
            "videoTitle": title,
            "country": country,
            "views": views,
            "premiumViews": 1,
            "grossRevenue": gross,
        }
    )
    aggregate.merge(row, row.gross_revenue * share)


def test_daily_series_sorted_ascending_by_date():
    """Test daily series is ordered by calendar date, not insertion."""
    aggregate = RunningAggregate(key="UC1")
    for day in ("2024-12-10", "2024-11-30", "2024-12-02", "Unknown"):
        _merge(aggregate, date=day, views=1)

    snapshot = build_snapshot(aggregate, "channel", SYNCED_AT)

    assert [point.date for point in snapshot.daily_series] == [
        "2024-11-30",
        "2024-12-02",
        "2024-12-10",
        "Unknown",
    ]


def test_top_countries_sorted_by_views_uncapped():
    """Test countries rank by views (not revenue) with no cap."""
    aggregate = RunningAggregate(key="UC1")
    _merge(aggregate, country="US", views=10, gross="1000")
    _merge(aggregate, country="DE", views=50, gross="1")
    _merge(aggregate, country="JP", views=30, gross="5")
    for idx in range(30):
        _merge(aggregate, country=f"C{idx:02d}", views=1)

    snapshot = build_snapshot(aggregate, "channel", SYNCED_AT)

    assert [c.country_code for c in snapshot.top_countries[:3]] == ["DE", "JP", "US"]
    assert len(snapshot.top_countries) == 33
    assert sum(c.views for c in snapshot.top_countries) == snapshot.total_views


def test_top_content_truncated_to_twenty():
    """Test 25 labels with decreasing net revenue keep the top 20 in order."""
    aggregate = RunningAggregate(key="owner-a")
    labels = [f"Video {idx:02d}" for idx in range(25)]
    # insert in scrambled order so ranking cannot rely on insertion
    for idx in [3, 24, 0, 17, 9, 12, 1, 22, 5, 8, 19, 2, 14, 21, 6, 11, 23, 4, 16, 10, 7, 20, 13, 18, 15]:
        _merge(aggregate, title=labels[idx], views=1, gross=str(1000 - idx * 10))

    snapshot = build_snapshot(aggregate, "owner", SYNCED_AT)

    assert TOP_CONTENT_LIMIT == 20
    assert [c.label for c in snapshot.top_content] == labels[:20]
    revenues = [c.net_revenue for c in snapshot.top_content]
    assert revenues == sorted(revenues, reverse=True)


def test_top_content_ties_keep_insertion_order():
    """Test equal net revenue entries keep bucket insertion order."""
    aggregate = RunningAggregate(key="UC1")
    for title in ("B", "A", "C"):
        _merge(aggregate, title=title, gross="10")

    snapshot = build_snapshot(aggregate, "channel", SYNCED_AT)

    assert [c.label for c in snapshot.top_content] == ["B", "A", "C"]


def test_totals_come_from_aggregate():
    """Test snapshot totals match the aggregate and the daily series."""
    aggregate = RunningAggregate(key="UC1")
    _merge(aggregate, date="2024-12-01", views=7, gross="10")
    _merge(aggregate, date="2024-12-02", views=3, gross="4")

    snapshot = build_snapshot(aggregate, "channel", SYNCED_AT)

    assert snapshot.total_views == 10
    assert snapshot.total_premium_views == 2
    assert snapshot.total_net_revenue == Decimal("7.0")
    assert sum(point.views for point in snapshot.daily_series) == snapshot.total_views
    assert snapshot.last_synced_at == SYNCED_AT


def test_gross_hidden_by_default():
    """Test gross is absent unless the policy exposes it."""
    aggregate = RunningAggregate(key="UC1")
    _merge(aggregate, views=1, gross="10")

    hidden = build_snapshot(aggregate, "channel", SYNCED_AT)
    payload = json.loads(hidden.to_json())

    assert hidden.total_gross_revenue is None
    assert "totalGrossRevenue" not in payload
    assert "grossRevenue" not in payload["dailySeries"][0]


def test_gross_policy_is_presentation_only():
    """Test exposing gross does not change any net figure."""
    aggregate = RunningAggregate(key="UC1")
    _merge(aggregate, views=1, gross="10")

    policy = GrossExposurePolicy(channel=True)
    exposed = build_snapshot(aggregate, "channel", SYNCED_AT, policy)
    hidden = build_snapshot(aggregate, "channel", SYNCED_AT)
    owner_view = build_snapshot(aggregate, "owner", SYNCED_AT, policy)

    assert exposed.total_gross_revenue == Decimal("10")
    assert exposed.daily_series[0].gross_revenue == Decimal("10")
    assert exposed.total_net_revenue == hidden.total_net_revenue
    assert owner_view.total_gross_revenue is None


def test_snapshot_json_uses_camel_case():
    """Test persisted JSON field names."""
    aggregate = RunningAggregate(key="UC1")
    _merge(aggregate, views=4, gross="2")

    payload = json.loads(build_snapshot(aggregate, "channel", SYNCED_AT).to_json())

    assert payload["totalViews"] == 4
    assert payload["topCountries"][0]["countryCode"] == "US"
    assert payload["topContent"][0]["label"] == "Video"
    assert "lastSyncedAt" in payload


def test_build_snapshots_skips_empty_aggregates():
    """Test aggregates that saw no rows produce no snapshot."""
    touched = RunningAggregate(key="UC1")
    _merge(touched, views=1)

    snapshots = build_snapshots(
        {"UC1": touched, "UC2": RunningAggregate(key="UC2")}, "channel", SYNCED_AT
    )

    assert list(snapshots) == ["UC1"]
