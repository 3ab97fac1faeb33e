"""Unit tests for aggregation of resolved usage rows."""
import random
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.revshare_core.attribution.aggregator import (
    AggregationEngine,
    RunningAggregate,
    aggregate_rows,
)
from src.revshare_core.attribution.normalizer import normalize_row
from src.revshare_core.attribution.ownership import (
    ChannelBinding,
    OwnerRecord,
    OwnershipResolver,
)
from src.revshare_core.attribution.snapshots import build_snapshot, build_snapshots


SYNCED_AT = datetime(2024, 12, 31, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def resolver():
    """Two channels for owner-a (70%), one for owner-b (50%)."""
    return OwnershipResolver.build(
        [
            ChannelBinding("UC_A1", "owner-a"),
            ChannelBinding("UC_A2", "owner-a"),
            ChannelBinding("UC_B1", "owner-b"),
        ],
        [
            OwnerRecord("owner-a", Decimal("70")),
            OwnerRecord("owner-b", Decimal("50")),
        ],
    )


def _row(channel, date="2024-12-01", country="US", title="Video", views=0, premium=0, gross="0"):
    return normalize_row(
        {
            "date": date,
            "channelId": channel,
            "videoTitle": title,
            "country": country,
            "views": views,
            "premiumViews": premium,
            "grossRevenue": gross,
        }
    )


def _sample_rows():
    rows = []
    for idx in range(60):
        rows.append(
            _row(
                ["UC_A1", "UC_A2", "UC_B1", "UC_ORPHAN"][idx % 4],
                date=f"2024-12-{(idx % 9) + 1:02d}",
                country=["US", "DE", "", "BR", "JP"][idx % 5],
                title=f"Video {idx % 7}",
                views=idx * 13 + 1,
                premium=idx % 6,
                gross=f"{idx * 1.37:.2f}",
            )
        )
    return rows


def test_merge_updates_totals_and_buckets():
    """Test merge folds a row into totals and all three bucket maps."""
    aggregate = RunningAggregate(key="UC1")
    row = _row("UC1", country="FR", title="Intro", views=10, premium=2, gross="4.00")

    aggregate.merge(row, Decimal("2.80"))
    aggregate.merge(row, Decimal("2.80"))

    assert aggregate.row_count == 2
    assert aggregate.totals.views == 20
    assert aggregate.totals.premium_views == 4
    assert aggregate.totals.gross_revenue == Decimal("8.00")
    assert aggregate.totals.net_revenue == Decimal("5.60")
    assert aggregate.by_day["2024-12-01"].views == 20
    assert aggregate.by_country["FR"].net_revenue == Decimal("5.60")
    assert aggregate.by_content["Intro"].premium_views == 4


def test_revenue_correctness_single_row(resolver):
    """Test 70% share on 100 gross yields exactly 70 net."""
    result = aggregate_rows([_row("UC_A1", views=5, gross="100")], resolver)

    channel = result.channels["UC_A1"]
    assert channel.totals.net_revenue == Decimal("70")
    assert channel.totals.gross_revenue == Decimal("100")
    assert result.owners["owner-a"].totals.net_revenue == Decimal("70")


def test_orphan_row_contributes_nothing(resolver):
    """Test an unbound channel row is excluded and counted once."""
    baseline = aggregate_rows([_row("UC_A1", views=5, gross="10")], resolver)
    with_orphan = aggregate_rows(
        [_row("UC_A1", views=5, gross="10"), _row("UC_NOPE", views=999, gross="999")],
        resolver,
    )

    assert with_orphan.orphaned_rows == baseline.orphaned_rows + 1
    assert with_orphan.orphaned_channel_ids == {"UC_NOPE"}
    assert with_orphan.matched_rows == 1
    assert with_orphan.total_rows == 2
    assert "UC_NOPE" not in with_orphan.channels
    assert with_orphan.owners["owner-a"].totals.views == 5
    assert with_orphan.owners["owner-a"].totals.net_revenue == Decimal("7.0")


def test_multi_channel_merge_at_owner_level(resolver):
    """Test two channels of one owner merge only at the owner aggregate."""
    result = aggregate_rows(
        [_row("UC_A1", views=120), _row("UC_A2", views=80)],
        resolver,
    )

    assert result.channels["UC_A1"].totals.views == 120
    assert result.channels["UC_A2"].totals.views == 80
    assert result.owners["owner-a"].totals.views == 200
    assert "owner-b" not in result.owners


def test_owners_without_shared_channels_do_not_interact(resolver):
    """Test owner-b totals only reflect owner-b channels."""
    result = aggregate_rows(
        [_row("UC_A1", views=1, gross="10"), _row("UC_B1", views=2, gross="10")],
        resolver,
    )

    assert result.owners["owner-a"].totals.views == 1
    assert result.owners["owner-b"].totals.views == 2
    assert result.owners["owner-b"].totals.net_revenue == Decimal("5.0")


def test_engine_add_reports_match(resolver):
    """Test AggregationEngine.add returns whether the row matched."""
    engine = AggregationEngine(resolver)

    assert engine.add(_row("UC_A1")) is True
    assert engine.add(_row("UC_NOPE")) is False
    assert engine.result.matched_rows == 1
    assert engine.result.orphaned_rows == 1


def test_aggregation_is_order_independent(resolver):
    """Test permuted row order yields identical totals and breakdowns."""
    rows = _sample_rows()
    shuffled = list(rows)
    random.Random(7).shuffle(shuffled)

    first = aggregate_rows(rows, resolver)
    second = aggregate_rows(shuffled, resolver)

    assert first.matched_rows == second.matched_rows
    assert first.orphaned_rows == second.orphaned_rows

    for scope in ("channels", "owners"):
        left = getattr(first, scope)
        right = getattr(second, scope)
        assert left.keys() == right.keys()
        for key in left:
            assert left[key].totals == right[key].totals
            assert left[key].by_day == right[key].by_day
            assert left[key].by_country == right[key].by_country
            assert left[key].by_content == right[key].by_content

    first_snaps = build_snapshots(first.owners, "owner", SYNCED_AT)
    second_snaps = build_snapshots(second.owners, "owner", SYNCED_AT)
    for key in first_snaps:
        assert first_snaps[key].daily_series == second_snaps[key].daily_series
        assert first_snaps[key].total_net_revenue == second_snaps[key].total_net_revenue


def test_totals_conserved_across_buckets(resolver):
    """Test totals equal the sum over day and country buckets."""
    result = aggregate_rows(_sample_rows(), resolver)

    for aggregate in list(result.channels.values()) + list(result.owners.values()):
        for buckets in (aggregate.by_day, aggregate.by_country, aggregate.by_content):
            assert sum(b.views for b in buckets.values()) == aggregate.totals.views
            assert (
                sum((b.net_revenue for b in buckets.values()), Decimal("0"))
                == aggregate.totals.net_revenue
            )


def test_snapshot_totals_conserved_across_series(resolver):
    """Test snapshot totals equal the sum over dailySeries and topCountries."""
    result = aggregate_rows(_sample_rows(), resolver)

    for scope, aggregates in (("channel", result.channels), ("owner", result.owners)):
        for aggregate in aggregates.values():
            snapshot = build_snapshot(aggregate, scope, SYNCED_AT)

            assert sum(p.views for p in snapshot.daily_series) == snapshot.total_views
            assert (
                sum(p.premium_views for p in snapshot.daily_series)
                == snapshot.total_premium_views
            )
            assert (
                sum((p.net_revenue for p in snapshot.daily_series), Decimal("0"))
                == snapshot.total_net_revenue
            )
            assert sum(p.views for p in snapshot.top_countries) == snapshot.total_views
            assert (
                sum((p.net_revenue for p in snapshot.top_countries), Decimal("0"))
                == snapshot.total_net_revenue
            )


def test_large_and_fractional_amounts_are_order_independent(resolver):
    """Test wide-magnitude revenue sums exactly in every row order."""
    grosses = [
        "999999999999999.999999",
        "0.5",
        "0.5",
        "0.000001",
        "123456789012345.678901",
        "1e27",
    ]
    rows = [_row("UC_A1", gross=gross, title=f"V{i}") for i, gross in enumerate(grosses)]

    expected_gross = (
        Decimal("999999999999999.999999")
        + Decimal("1")
        + Decimal("0.000001")
        + Decimal("123456789012345.678901")
    )

    totals = set()
    for seed in range(10):
        shuffled = list(rows)
        random.Random(seed).shuffle(shuffled)
        owner = aggregate_rows(shuffled, resolver).owners["owner-a"]
        assert owner.totals.gross_revenue == expected_gross
        totals.add((owner.totals.gross_revenue, owner.totals.net_revenue))

    assert len(totals) == 1
