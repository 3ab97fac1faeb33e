"""SQLite schema extensions for the ownership directory.

Tables: owners, channel_bindings
"""
import logging
import sqlite3


logger = logging.getLogger(__name__)


def init_directory_schema(db_conn: sqlite3.Connection) -> None:
    """Initialize ownership directory schema.

    channel_bindings is keyed by channel_external_id, so a channel can
    only ever be bound to one owner.

    Args:
        db_conn: SQLite connection
    """
    db_conn.execute(
        """
        CREATE TABLE IF NOT EXISTS owners (
            owner_id TEXT PRIMARY KEY,
            username TEXT NOT NULL DEFAULT '',
            revenue_share_percent TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db_conn.execute(
        """
        CREATE TABLE IF NOT EXISTS channel_bindings (
            channel_external_id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            channel_name TEXT,
            bound_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    db_conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_bindings_owner
        ON channel_bindings(owner_id)
        """
    )

    db_conn.commit()
    logger.info("Directory schema initialized")
