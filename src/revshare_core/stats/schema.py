"""SQLite schema definitions for the stats store.

Database: data/revshare.db (WAL mode)
Tables: owner_stats, channel_stats, sync_runs
"""
import logging
import sqlite3
from pathlib import Path


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1


def init_database(db_path: str | Path) -> None:
    """Initialize stats database with schema.

    Creates tables if they don't exist.
    Enables WAL mode for concurrent reads.

    Args:
        db_path: Path to SQLite database file
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)

    try:
        conn.execute("PRAGMA journal_mode=WAL")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        current_version = cursor.fetchone()[0] or 0

        if current_version < SCHEMA_VERSION:
            _apply_schema(conn)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
            logger.info("Stats schema initialized (version %s)", SCHEMA_VERSION)
        else:
            logger.debug("Stats schema up to date (version %s)", current_version)

    finally:
        conn.close()


def _apply_schema(conn: sqlite3.Connection) -> None:
    """Apply stats schema.

    Args:
        conn: SQLite connection (in transaction)
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS owner_stats (
            owner_id TEXT PRIMARY KEY,
            total_views INTEGER NOT NULL,
            total_premium_views INTEGER NOT NULL,
            total_net_revenue TEXT NOT NULL,
            snapshot_json TEXT NOT NULL,
            last_synced_at TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS channel_stats (
            channel_external_id TEXT PRIMARY KEY,
            total_views INTEGER NOT NULL,
            total_premium_views INTEGER NOT NULL,
            total_net_revenue TEXT NOT NULL,
            snapshot_json TEXT NOT NULL,
            last_synced_at TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sync_runs (
            batch_id TEXT PRIMARY KEY,
            synced_at TEXT NOT NULL,
            total_rows INTEGER NOT NULL,
            matched_rows INTEGER NOT NULL,
            orphaned_rows INTEGER NOT NULL,
            orphaned_channel_ids_json TEXT NOT NULL,
            failed_keys_json TEXT NOT NULL,
            status TEXT NOT NULL,
            recorded_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_sync_runs_synced
        ON sync_runs(synced_at)
        """
    )
