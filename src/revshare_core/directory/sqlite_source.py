"""SQLite ownership directory: owners, channel bindings, admin writes."""
import logging
import sqlite3
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from ..attribution.exceptions import OwnershipUnavailableError
from ..attribution.ownership import ChannelBinding, OwnerRecord
from .schema import init_directory_schema


logger = logging.getLogger(__name__)


class SQLiteOwnershipSource:
    """Ownership collaborator backed by the local SQLite database."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path)
        try:
            init_directory_schema(conn)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    async def fetch_bindings(self) -> list[ChannelBinding]:
        """Fetch the full set of channel -> owner bindings."""
        try:
            conn = self._connect()
            try:
                rows = conn.execute(
                    """
                    SELECT channel_external_id, owner_id, channel_name
                    FROM channel_bindings
                    """
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise OwnershipUnavailableError(
                f"Failed to read channel bindings: {exc}"
            ) from exc

        return [
            ChannelBinding(
                channel_external_id=row[0], owner_id=row[1], channel_name=row[2]
            )
            for row in rows
        ]

    async def fetch_owners(self) -> list[OwnerRecord]:
        """Fetch every owner record with its current share."""
        try:
            conn = self._connect()
            try:
                rows = conn.execute(
                    """
                    SELECT owner_id, username, revenue_share_percent, status
                    FROM owners
                    """
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise OwnershipUnavailableError(
                f"Failed to read owner records: {exc}"
            ) from exc

        return [
            OwnerRecord(
                owner_id=row[0],
                username=row[1],
                revenue_share_percent=Decimal(row[2]),
                status=row[3],
            )
            for row in rows
        ]

    def upsert_owner(
        self,
        owner_id: str,
        revenue_share_percent: Decimal | int | float | str,
        username: str = "",
        status: str = "active",
    ) -> OwnerRecord:
        """Create or update an owner record.

        Raises:
            ValueError: If the share is outside 0-100
        """
        share = Decimal(str(revenue_share_percent))
        if not share.is_finite() or not Decimal("0") <= share <= Decimal("100"):
            raise ValueError(
                f"revenue_share_percent must be within 0-100, got {revenue_share_percent}"
            )

        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO owners (owner_id, username, revenue_share_percent, status)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(owner_id)
                DO UPDATE SET
                    username=excluded.username,
                    revenue_share_percent=excluded.revenue_share_percent,
                    status=excluded.status,
                    updated_at=CURRENT_TIMESTAMP
                """,
                (owner_id, username, str(share), status),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info("Upserted owner %s (share=%s%%)", owner_id, share)
        return OwnerRecord(
            owner_id=owner_id,
            username=username,
            revenue_share_percent=share,
            status=status,
        )

    def delete_owner(self, owner_id: str) -> bool:
        """Delete an owner; its channels become orphaned until rebound."""
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM owners WHERE owner_id=?", (owner_id,))
            conn.commit()
        finally:
            conn.close()
        return cursor.rowcount > 0

    def bind_channel(
        self,
        channel_external_id: str,
        owner_id: str,
        channel_name: Optional[str] = None,
    ) -> ChannelBinding:
        """Bind a channel to an owner, replacing any prior binding."""
        return self.bind_channels(
            [ChannelBinding(channel_external_id, owner_id, channel_name)]
        )[0]

    def bind_channels(self, bindings: Iterable[ChannelBinding]) -> list[ChannelBinding]:
        """Bind many channels in one transaction.

        Rebinding replaces the previous owner in place; a channel never
        holds two bindings.
        """
        bindings = list(bindings)
        for binding in bindings:
            if not binding.channel_external_id.strip():
                raise ValueError("channel_external_id must be non-empty")

        conn = self._connect()
        try:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO channel_bindings (
                        channel_external_id, owner_id, channel_name
                    )
                    VALUES (?, ?, ?)
                    ON CONFLICT(channel_external_id)
                    DO UPDATE SET
                        owner_id=excluded.owner_id,
                        channel_name=excluded.channel_name,
                        bound_at=CURRENT_TIMESTAMP
                    """,
                    [
                        (
                            binding.channel_external_id,
                            binding.owner_id,
                            binding.channel_name,
                        )
                        for binding in bindings
                    ],
                )
        finally:
            conn.close()

        logger.info("Bound %s channels", len(bindings))
        return bindings

    def unbind_channel(self, channel_external_id: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "DELETE FROM channel_bindings WHERE channel_external_id=?",
                (channel_external_id,),
            )
            conn.commit()
        finally:
            conn.close()
        return cursor.rowcount > 0

    def list_owner_channels(self, owner_id: str) -> list[ChannelBinding]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT channel_external_id, owner_id, channel_name
                FROM channel_bindings
                WHERE owner_id=?
                ORDER BY channel_external_id
                """,
                (owner_id,),
            ).fetchall()
        finally:
            conn.close()

        return [ChannelBinding(row[0], row[1], row[2]) for row in rows]
