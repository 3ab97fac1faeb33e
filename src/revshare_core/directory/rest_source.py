"""Remote ownership directory over a PostgREST-style HTTP API.

Reads the `channels` and `users` tables of the account service. Any
transport or payload problem is fatal for the batch.
"""
import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp

from ..attribution.exceptions import OwnershipUnavailableError
from ..attribution.ownership import ChannelBinding, OwnerRecord


logger = logging.getLogger(__name__)


class RestOwnershipSource:
    """Async ownership collaborator backed by a REST directory."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: aiohttp.ClientSession,
    ) -> None:
        """Initialize REST ownership source.

        Args:
            base_url: Directory root, e.g. https://project.supabase.co
            api_key: Service key sent as apikey / bearer token
            session: aiohttp session for requests
        """
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.session = session

    def _redact(self, text: str) -> str:
        if not text:
            return text
        return text.replace(self._api_key, "[REDACTED]")

    async def _get_table(self, table: str, select: str) -> list[dict[str, Any]]:
        url = f"{self.base_url}/rest/v1/{table}"
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }

        try:
            async with self.session.get(
                url, params={"select": select}, headers=headers
            ) as response:
                if response.status != 200:
                    error_body = await response.text()
                    logger.error(
                        "Directory API error (%s) for %s: %s",
                        response.status,
                        table,
                        self._redact(error_body[:500]),
                    )
                    raise OwnershipUnavailableError(
                        f"Directory request for {table} failed: {response.status}"
                    )
                payload = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise OwnershipUnavailableError(
                f"Directory unreachable for {table}: {self._redact(str(exc))}"
            ) from exc

        if not isinstance(payload, list):
            raise OwnershipUnavailableError(
                f"Directory returned malformed {table} payload"
            )

        logger.info("Fetched %s %s records from directory", len(payload), table)
        return payload

    async def fetch_bindings(self) -> list[ChannelBinding]:
        rows = await self._get_table("channels", "channel_id,user_id,channel_name")

        bindings: list[ChannelBinding] = []
        for row in rows:
            channel_id = row.get("channel_id")
            owner_id = row.get("user_id")
            if not channel_id or not owner_id:
                logger.warning("Skipping directory channel without ids: %s", row)
                continue
            bindings.append(
                ChannelBinding(
                    channel_external_id=str(channel_id).strip(),
                    owner_id=str(owner_id),
                    channel_name=row.get("channel_name"),
                )
            )
        return bindings

    async def fetch_owners(self) -> list[OwnerRecord]:
        rows = await self._get_table("users", "id,username,revenue_share,status")

        owners: list[OwnerRecord] = []
        for row in rows:
            owner_id = row.get("id")
            if not owner_id:
                continue
            try:
                share = Decimal(str(row.get("revenue_share")))
            except InvalidOperation:
                logger.warning("Owner %s has unparsable revenue_share", owner_id)
                continue
            owners.append(
                OwnerRecord(
                    owner_id=str(owner_id),
                    username=row.get("username") or "",
                    revenue_share_percent=share,
                    status=row.get("status") or "active",
                )
            )
        return owners
