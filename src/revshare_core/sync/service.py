"""Sync batch orchestration.

rows -> normalize -> resolve ownership -> aggregate + price -> snapshot
-> persist. Ownership is fetched once per batch; any failure to fetch it
aborts the batch before anything is written.
"""
import asyncio
import json
import logging
import os
import sqlite3
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Mapping, Optional

import aiofiles
import aiohttp
from pydantic import BaseModel
from redis.asyncio import Redis
from redis.asyncio.lock import Lock as AsyncRedisLock

from ..attribution.aggregator import BatchAggregates, aggregate_rows
from ..attribution.exceptions import OwnershipUnavailableError, SyncLockedError
from ..attribution.normalizer import normalize_row
from ..attribution.ownership import OwnershipResolver, OwnershipSource
from ..attribution.snapshots import (
    TOP_CONTENT_LIMIT,
    GrossExposurePolicy,
    build_snapshots,
)
from ..directory.rest_source import RestOwnershipSource
from ..directory.sqlite_source import SQLiteOwnershipSource
from ..schemas.stats import Snapshot
from ..stats.store import KeyResult, PersistOutcome, StatsStore


logger = logging.getLogger(__name__)


PERSIST_LOCK_KEY = "revshare:stats:persist_lock"
PERSIST_LOCK_TTL_SECONDS = 300

RawRecord = Mapping[str, Any] | BaseModel


@dataclass
class BatchResult:
    """Pure output of one batch before persistence."""

    aggregates: BatchAggregates
    owner_snapshots: dict[str, Snapshot]
    channel_snapshots: dict[str, Snapshot]


@dataclass
class SyncReport:
    """Completion notice for one batch."""

    batch_id: str
    synced_at: datetime
    total_rows: int
    matched_rows: int
    orphaned_rows: int
    orphaned_channel_ids: list[str]
    owner_results: list[KeyResult] = field(default_factory=list)
    channel_results: list[KeyResult] = field(default_factory=list)
    committed: bool = False

    @property
    def failed_keys(self) -> list[KeyResult]:
        return [
            result
            for result in self.owner_results + self.channel_results
            if not result.ok
        ]

    @property
    def status(self) -> str:
        if not self.committed:
            return "rolled_back"
        if self.failed_keys:
            return "partial"
        return "committed"

    def summary(self) -> str:
        message = (
            f"{self.matched_rows} rows matched, {self.orphaned_rows} rows orphaned"
        )
        if self.orphaned_channel_ids:
            message += f" ({len(self.orphaned_channel_ids)} unbound channels)"
        failed = self.failed_keys
        if failed:
            keys = ", ".join(f"{result.key_type}:{result.key}" for result in failed)
            message += f"; persistence failed for {keys}"
            if not self.committed:
                message += "; batch rolled back"
        return message


def compute_batch(
    records: Iterable[RawRecord],
    resolver: OwnershipResolver,
    synced_at: datetime,
    policy: Optional[GrossExposurePolicy] = None,
    top_content_limit: int = TOP_CONTENT_LIMIT,
) -> BatchResult:
    """Normalize, aggregate and snapshot one batch without any I/O."""
    rows = (normalize_row(record) for record in records)
    aggregates = aggregate_rows(rows, resolver)

    return BatchResult(
        aggregates=aggregates,
        owner_snapshots=build_snapshots(
            aggregates.owners, "owner", synced_at, policy, top_content_limit
        ),
        channel_snapshots=build_snapshots(
            aggregates.channels, "channel", synced_at, policy, top_content_limit
        ),
    )


class SyncService:
    """Runs sync batches against an ownership source and a stats store."""

    def __init__(
        self,
        ownership_source: OwnershipSource,
        stats_store: StatsStore,
        redis: Optional[Redis] = None,
        raw_dir: Optional[Path] = None,
        gross_policy: Optional[GrossExposurePolicy] = None,
        all_or_nothing: bool = True,
        top_content_limit: int = TOP_CONTENT_LIMIT,
        lock_ttl_seconds: int = PERSIST_LOCK_TTL_SECONDS,
    ) -> None:
        self.ownership_source = ownership_source
        self.stats_store = stats_store
        self.redis = redis
        self.raw_dir = Path(raw_dir) if raw_dir else None
        self.gross_policy = gross_policy or GrossExposurePolicy()
        self.all_or_nothing = all_or_nothing
        self.top_content_limit = top_content_limit
        self.lock_ttl_seconds = lock_ttl_seconds

    async def load_resolver(self) -> OwnershipResolver:
        """Fetch bindings and owners fresh and build the batch resolver.

        Raises:
            OwnershipUnavailableError: If either collection cannot be read
        """
        try:
            bindings, owners = await asyncio.gather(
                self.ownership_source.fetch_bindings(),
                self.ownership_source.fetch_owners(),
            )
        except OwnershipUnavailableError:
            raise
        except Exception as exc:
            raise OwnershipUnavailableError(
                f"Ownership data unavailable: {exc}"
            ) from exc

        return OwnershipResolver.build(bindings, owners)

    async def run_batch(
        self,
        records: list[RawRecord],
        synced_at: Optional[datetime] = None,
        batch_id: Optional[str] = None,
    ) -> SyncReport:
        """Run one sync batch end to end.

        Args:
            records: Raw export records (dicts or RawUsageRecord)
            synced_at: Batch timestamp (defaults to now, UTC)
            batch_id: Batch identifier (generated when omitted)

        Returns:
            SyncReport with matched/orphaned counts and per-key results

        Raises:
            OwnershipUnavailableError: Ownership could not be loaded
            SyncLockedError: Another batch holds the persistence lock or the
                stats database stayed busy
        """
        batch_id = batch_id or str(uuid.uuid4())
        synced_at = synced_at or datetime.now(timezone.utc)

        logger.info("Starting sync batch %s (%s rows)", batch_id, len(records))

        resolver = await self.load_resolver()

        if self.raw_dir is not None:
            await self._write_raw_audit(records, batch_id, synced_at)

        result = compute_batch(
            records,
            resolver,
            synced_at,
            self.gross_policy,
            self.top_content_limit,
        )
        aggregates = result.aggregates

        report = SyncReport(
            batch_id=batch_id,
            synced_at=synced_at,
            total_rows=aggregates.total_rows,
            matched_rows=aggregates.matched_rows,
            orphaned_rows=aggregates.orphaned_rows,
            orphaned_channel_ids=sorted(aggregates.orphaned_channel_ids),
        )

        async with self._persist_lock():
            try:
                outcome = self.stats_store.save_snapshots(
                    result.owner_snapshots,
                    result.channel_snapshots,
                    all_or_nothing=self.all_or_nothing,
                )
            except sqlite3.Error as exc:
                logger.error(
                    "Sync batch %s: stats transaction failed: %s",
                    batch_id,
                    exc,
                    exc_info=True,
                )
                outcome = PersistOutcome.all_failed(
                    result.owner_snapshots, result.channel_snapshots, str(exc)
                )

        report.owner_results = outcome.owner_results
        report.channel_results = outcome.channel_results
        report.committed = outcome.committed

        self._record_run(report)

        if report.failed_keys:
            logger.error("Sync batch %s: %s", batch_id, report.summary())
        else:
            logger.info("Sync batch %s complete: %s", batch_id, report.summary())

        return report

    @asynccontextmanager
    async def _persist_lock(self) -> AsyncIterator[None]:
        if self.redis is None:
            yield
            return

        lock = AsyncRedisLock(
            self.redis,
            name=PERSIST_LOCK_KEY,
            timeout=self.lock_ttl_seconds,
            blocking=False,
        )

        acquired = await lock.acquire(blocking=False)
        if not acquired:
            raise SyncLockedError(PERSIST_LOCK_KEY)

        logger.debug("Acquired persistence lock %s", PERSIST_LOCK_KEY)
        try:
            yield
        finally:
            try:
                await lock.release()
            except Exception as exc:
                logger.error("Failed to release persistence lock: %s", exc)

    async def _write_raw_audit(
        self,
        records: list[RawRecord],
        batch_id: str,
        synced_at: datetime,
    ) -> None:
        self.raw_dir.mkdir(parents=True, exist_ok=True)
        jsonl_path = self.raw_dir / f"raw_usage_{batch_id}.jsonl"
        fetched_at = synced_at.isoformat()

        async with aiofiles.open(jsonl_path, mode="w", encoding="utf-8") as handle:
            for record in records:
                if isinstance(record, BaseModel):
                    record = record.model_dump()
                envelope = {
                    "source": "analytics_export",
                    "batch_id": batch_id,
                    "fetched_at": fetched_at,
                    "record": dict(record),
                }
                await handle.write(
                    json.dumps(envelope, separators=(",", ":"), default=str) + "\n"
                )

        logger.info("Wrote %s raw rows to %s", len(records), jsonl_path)

    def _record_run(self, report: SyncReport) -> None:
        try:
            self.stats_store.record_sync_run(
                batch_id=report.batch_id,
                synced_at=report.synced_at.isoformat(),
                total_rows=report.total_rows,
                matched_rows=report.matched_rows,
                orphaned_rows=report.orphaned_rows,
                orphaned_channel_ids=report.orphaned_channel_ids,
                failed_keys=[
                    {"key_type": r.key_type, "key": r.key, "error": r.error}
                    for r in report.failed_keys
                ],
                status=report.status,
            )
        except sqlite3.Error as exc:
            logger.error("Failed to record sync run %s: %s", report.batch_id, exc)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def stats_store_from_env() -> StatsStore:
    return StatsStore(
        os.getenv("REVSHARE_DB_PATH", "data/revshare.db"),
        busy_timeout=float(os.getenv("REVSHARE_DB_BUSY_TIMEOUT_SECONDS", "5")),
    )


@asynccontextmanager
async def sync_service_from_env(
    stats_store: Optional[StatsStore] = None,
) -> AsyncIterator[SyncService]:
    """Build a SyncService from environment variables.

    An already open stats_store is reused; otherwise one is built from
    REVSHARE_DB_PATH.

    Opens (and closes on exit) the aiohttp session for a REST directory
    and the redis client for the persistence lock when configured.
    """
    db_path = os.getenv("REVSHARE_DB_PATH", "data/revshare.db")
    raw_dir = os.getenv("REVSHARE_RAW_DIR", "data/sync/raw")
    directory_url = os.getenv("REVSHARE_DIRECTORY_URL")
    directory_key = os.getenv("REVSHARE_DIRECTORY_KEY", "")
    redis_url = os.getenv("REDIS_URL")

    policy = GrossExposurePolicy(
        channel=_env_flag("REVSHARE_EXPOSE_CHANNEL_GROSS", False),
        owner=_env_flag("REVSHARE_EXPOSE_OWNER_GROSS", False),
    )

    timeout = aiohttp.ClientTimeout(total=60, connect=10)
    session: Optional[aiohttp.ClientSession] = None
    redis: Optional[Redis] = None

    try:
        if directory_url:
            session = aiohttp.ClientSession(timeout=timeout)
            ownership_source = RestOwnershipSource(
                directory_url, directory_key, session
            )
        else:
            ownership_source = SQLiteOwnershipSource(db_path)

        if redis_url:
            redis = Redis.from_url(redis_url, decode_responses=False)

        yield SyncService(
            ownership_source=ownership_source,
            stats_store=stats_store or stats_store_from_env(),
            redis=redis,
            raw_dir=Path(raw_dir) if raw_dir else None,
            gross_policy=policy,
            all_or_nothing=_env_flag("REVSHARE_ALL_OR_NOTHING", True),
            top_content_limit=int(
                os.getenv("REVSHARE_TOP_CONTENT_LIMIT", str(TOP_CONTENT_LIMIT))
            ),
            lock_ttl_seconds=int(
                os.getenv("REVSHARE_LOCK_TTL_SECONDS", str(PERSIST_LOCK_TTL_SECONDS))
            ),
        )
    finally:
        if redis is not None:
            await redis.aclose()
        if session is not None:
            await session.close()
