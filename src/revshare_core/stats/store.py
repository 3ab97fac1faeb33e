"""SQLite-backed stats store.

One snapshot row per owner and per channel. Every write is a full
replacement of the previous snapshot for that key.
"""
import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..attribution.exceptions import SyncLockedError
from ..schemas.stats import Snapshot
from .schema import init_database


logger = logging.getLogger(__name__)


ROLLED_BACK = "rolled back"

_UPSERT_SQL = {
    "owner": """
        INSERT INTO owner_stats (
            owner_id, total_views, total_premium_views,
            total_net_revenue, snapshot_json, last_synced_at
        )
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(owner_id)
        DO UPDATE SET
            total_views=excluded.total_views,
            total_premium_views=excluded.total_premium_views,
            total_net_revenue=excluded.total_net_revenue,
            snapshot_json=excluded.snapshot_json,
            last_synced_at=excluded.last_synced_at,
            updated_at=CURRENT_TIMESTAMP
    """,
    "channel": """
        INSERT INTO channel_stats (
            channel_external_id, total_views, total_premium_views,
            total_net_revenue, snapshot_json, last_synced_at
        )
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(channel_external_id)
        DO UPDATE SET
            total_views=excluded.total_views,
            total_premium_views=excluded.total_premium_views,
            total_net_revenue=excluded.total_net_revenue,
            snapshot_json=excluded.snapshot_json,
            last_synced_at=excluded.last_synced_at,
            updated_at=CURRENT_TIMESTAMP
    """,
}


@dataclass(frozen=True)
class KeyResult:
    """Persistence outcome for one snapshot key."""

    key_type: str
    key: str
    ok: bool
    error: Optional[str] = None


@dataclass
class PersistOutcome:
    """Per-key results of one batch write."""

    owner_results: list[KeyResult]
    channel_results: list[KeyResult]
    committed: bool

    @classmethod
    def all_failed(
        cls,
        owner_snapshots: dict[str, Snapshot],
        channel_snapshots: dict[str, Snapshot],
        error: str,
    ) -> "PersistOutcome":
        """Outcome for a batch whose transaction could not be completed."""
        return cls(
            owner_results=[
                KeyResult("owner", key, ok=False, error=error) for key in owner_snapshots
            ],
            channel_results=[
                KeyResult("channel", key, ok=False, error=error)
                for key in channel_snapshots
            ],
            committed=False,
        )


class StatsStore:
    """Upsert/read of owner and channel snapshots."""

    def __init__(self, db_path: str | Path, busy_timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        init_database(self.db_path)

    def _connect(self, **kwargs) -> sqlite3.Connection:
        kwargs.setdefault("timeout", self.busy_timeout)
        conn = sqlite3.connect(self.db_path, **kwargs)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def save_snapshots(
        self,
        owner_snapshots: dict[str, Snapshot],
        channel_snapshots: dict[str, Snapshot],
        all_or_nothing: bool = True,
    ) -> PersistOutcome:
        """Write every snapshot of a batch.

        Each key is written inside its own SAVEPOINT of one transaction, so
        a failing key does not stop the others. With all_or_nothing, any
        failure rolls back the whole batch.

        Args:
            owner_snapshots: owner_id -> Snapshot
            channel_snapshots: channel_external_id -> Snapshot
            all_or_nothing: Roll back everything if any key fails

        Returns:
            PersistOutcome with one KeyResult per key

        Raises:
            SyncLockedError: Another writer held the database past busy_timeout
        """
        conn = self._connect(isolation_level=None)
        owner_results: list[KeyResult] = []
        channel_results: list[KeyResult] = []

        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                logger.error("Stats database busy, batch not persisted: %s", exc)
                raise SyncLockedError(f"sqlite:{self.db_path}") from exc

            for key_type, snapshots, results in (
                ("owner", owner_snapshots, owner_results),
                ("channel", channel_snapshots, channel_results),
            ):
                for key, snapshot in snapshots.items():
                    results.append(self._upsert_one(conn, key_type, key, snapshot))

            failures = [
                result for result in owner_results + channel_results if not result.ok
            ]

            if failures and all_or_nothing:
                conn.execute("ROLLBACK")
                logger.error(
                    "Rolled back batch persistence: %s of %s keys failed",
                    len(failures),
                    len(owner_results) + len(channel_results),
                )
                owner_results = [_mark_rolled_back(result) for result in owner_results]
                channel_results = [
                    _mark_rolled_back(result) for result in channel_results
                ]
                return PersistOutcome(owner_results, channel_results, committed=False)

            conn.execute("COMMIT")
            logger.info(
                "Persisted %s owner and %s channel snapshots (%s failed)",
                sum(1 for result in owner_results if result.ok),
                sum(1 for result in channel_results if result.ok),
                len(failures),
            )
            return PersistOutcome(owner_results, channel_results, committed=True)

        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _upsert_one(
        self,
        conn: sqlite3.Connection,
        key_type: str,
        key: str,
        snapshot: Snapshot,
    ) -> KeyResult:
        conn.execute("SAVEPOINT snapshot_write")
        try:
            conn.execute(
                _UPSERT_SQL[key_type],
                (
                    key,
                    snapshot.total_views,
                    snapshot.total_premium_views,
                    str(snapshot.total_net_revenue),
                    snapshot.to_json(),
                    snapshot.last_synced_at.isoformat(),
                ),
            )
        except sqlite3.Error as exc:
            conn.execute("ROLLBACK TO snapshot_write")
            conn.execute("RELEASE snapshot_write")
            logger.error(
                "Failed to persist %s snapshot %s: %s", key_type, key, exc, exc_info=True
            )
            return KeyResult(key_type=key_type, key=key, ok=False, error=str(exc))

        conn.execute("RELEASE snapshot_write")
        return KeyResult(key_type=key_type, key=key, ok=True)

    def get_owner_snapshot(self, owner_id: str) -> Optional[Snapshot]:
        """Read the latest snapshot for an owner; None means no data yet."""
        return self._read(
            "SELECT snapshot_json FROM owner_stats WHERE owner_id=?", owner_id
        )

    def get_channel_snapshot(self, channel_external_id: str) -> Optional[Snapshot]:
        """Read the latest snapshot for a channel; None means no data yet."""
        return self._read(
            "SELECT snapshot_json FROM channel_stats WHERE channel_external_id=?",
            channel_external_id,
        )

    def _read(self, query: str, key: str) -> Optional[Snapshot]:
        conn = self._connect()
        try:
            row = conn.execute(query, (key,)).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        return Snapshot.model_validate_json(row[0])

    def record_sync_run(
        self,
        batch_id: str,
        synced_at: str,
        total_rows: int,
        matched_rows: int,
        orphaned_rows: int,
        orphaned_channel_ids: list[str],
        failed_keys: list[dict],
        status: str,
    ) -> None:
        """Record the batch-wide summary of one sync."""
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO sync_runs (
                    batch_id, synced_at, total_rows, matched_rows,
                    orphaned_rows, orphaned_channel_ids_json,
                    failed_keys_json, status
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(batch_id)
                DO UPDATE SET
                    synced_at=excluded.synced_at,
                    total_rows=excluded.total_rows,
                    matched_rows=excluded.matched_rows,
                    orphaned_rows=excluded.orphaned_rows,
                    orphaned_channel_ids_json=excluded.orphaned_channel_ids_json,
                    failed_keys_json=excluded.failed_keys_json,
                    status=excluded.status,
                    recorded_at=CURRENT_TIMESTAMP
                """,
                (
                    batch_id,
                    synced_at,
                    total_rows,
                    matched_rows,
                    orphaned_rows,
                    json.dumps(orphaned_channel_ids, separators=(",", ":")),
                    json.dumps(failed_keys, separators=(",", ":")),
                    status,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_last_sync_run(self) -> Optional[dict]:
        """Return the most recent sync run summary, if any."""
        conn = self._connect()
        try:
            row = conn.execute(
                """
                SELECT batch_id, synced_at, total_rows, matched_rows,
                       orphaned_rows, orphaned_channel_ids_json,
                       failed_keys_json, status
                FROM sync_runs
                ORDER BY synced_at DESC, recorded_at DESC
                LIMIT 1
                """
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None

        return {
            "batch_id": row[0],
            "synced_at": row[1],
            "total_rows": row[2],
            "matched_rows": row[3],
            "orphaned_rows": row[4],
            "orphaned_channel_ids": json.loads(row[5]),
            "failed_keys": json.loads(row[6]),
            "status": row[7],
        }


def _mark_rolled_back(result: KeyResult) -> KeyResult:
    if not result.ok:
        return result
    return KeyResult(
        key_type=result.key_type, key=result.key, ok=False, error=ROLLED_BACK
    )
