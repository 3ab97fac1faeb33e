"""FastAPI routes for sync submission, stats reads and directory admin."""
import logging
import os
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ..attribution.exceptions import OwnershipUnavailableError, SyncLockedError
from ..attribution.ownership import OwnershipResolver
from ..directory.sqlite_source import SQLiteOwnershipSource
from ..schemas.directory import (
    ChannelBindingIn,
    ChannelBindingOut,
    OwnerOut,
    OwnerUpsert,
)
from ..schemas.stats import Snapshot
from ..schemas.usage import SyncRequest
from ..stats.store import KeyResult, StatsStore
from ..sync.service import sync_service_from_env
from .auth import require_admin, require_api_key


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1", tags=["revshare"], dependencies=[Depends(require_api_key)]
)


class KeyResultOut(BaseModel):
    key_type: str
    key: str
    ok: bool
    error: Optional[str] = None


class SyncReportResponse(BaseModel):
    """Completion notice for a sync batch."""

    batch_id: str
    synced_at: datetime
    status: str = Field(..., description="committed | partial | rolled_back")
    committed: bool
    total_rows: int
    matched_rows: int
    orphaned_rows: int
    orphaned_channel_ids: list[str]
    owner_results: list[KeyResultOut]
    channel_results: list[KeyResultOut]
    summary: str


class ChannelOwnershipOut(BaseModel):
    """Current binding of one channel as seen by the next sync."""

    channel_external_id: str
    owner_id: str
    channel_name: Optional[str] = None
    resolved: bool
    revenue_share_percent: Optional[Decimal] = None


def get_stats_store(request: Request) -> StatsStore:
    """Stats store opened once by the application lifespan."""
    return request.app.state.stats_store


StatsStoreDep = Annotated[StatsStore, Depends(get_stats_store)]


def _key_results(results: list[KeyResult]) -> list[KeyResultOut]:
    return [
        KeyResultOut(
            key_type=result.key_type, key=result.key, ok=result.ok, error=result.error
        )
        for result in results
    ]


def _local_directory() -> SQLiteOwnershipSource:
    if os.getenv("REVSHARE_DIRECTORY_URL"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Ownership directory is remote; administer it there",
        )
    return SQLiteOwnershipSource(os.getenv("REVSHARE_DB_PATH", "data/revshare.db"))


def _ownership_unavailable(exc: OwnershipUnavailableError) -> HTTPException:
    logger.error("Ownership directory unavailable: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Ownership data unavailable: {exc}",
    )


async def _load_resolver(stats_store: StatsStore) -> OwnershipResolver:
    try:
        async with sync_service_from_env(stats_store=stats_store) as service:
            return await service.load_resolver()
    except OwnershipUnavailableError as exc:
        raise _ownership_unavailable(exc) from exc


@router.post(
    "/sync",
    response_model=SyncReportResponse,
    summary="Run a sync batch",
    description=(
        "Aggregate export rows into owner and channel snapshots and persist "
        "them. Returns matched/orphaned counts and a per-key persistence report."
    ),
)
async def run_sync(payload: SyncRequest, stats_store: StatsStoreDep) -> SyncReportResponse:
    if not payload.rows:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="rows must be non-empty",
        )

    try:
        async with sync_service_from_env(stats_store=stats_store) as service:
            report = await service.run_batch(payload.rows, batch_id=payload.batch_id)
    except OwnershipUnavailableError as exc:
        raise _ownership_unavailable(exc) from exc
    except SyncLockedError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    return SyncReportResponse(
        batch_id=report.batch_id,
        synced_at=report.synced_at,
        status=report.status,
        committed=report.committed,
        total_rows=report.total_rows,
        matched_rows=report.matched_rows,
        orphaned_rows=report.orphaned_rows,
        orphaned_channel_ids=report.orphaned_channel_ids,
        owner_results=_key_results(report.owner_results),
        channel_results=_key_results(report.channel_results),
        summary=report.summary(),
    )


@router.get("/sync/last", summary="Most recent sync run summary")
async def get_last_sync(stats_store: StatsStoreDep) -> dict:
    run = stats_store.get_last_sync_run()
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No sync has run yet"
        )
    return run


@router.get(
    "/stats/owners/{owner_id}",
    response_model=Snapshot,
    response_model_exclude_none=True,
    summary="Owner snapshot",
)
async def get_owner_stats(owner_id: str, stats_store: StatsStoreDep) -> Snapshot:
    snapshot = stats_store.get_owner_snapshot(owner_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No stats for owner '{owner_id}'",
        )
    return snapshot


@router.get(
    "/stats/owners/{owner_id}/channels",
    response_model=list[Snapshot],
    response_model_exclude_none=True,
    summary="Channel snapshots of an owner's currently bound channels",
)
async def get_owner_channel_stats(
    owner_id: str, stats_store: StatsStoreDep
) -> list[Snapshot]:
    resolver = await _load_resolver(stats_store)
    channel_ids = resolver.channel_ids_for_owner(owner_id)
    if not channel_ids:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Owner '{owner_id}' has no resolvable channels",
        )

    snapshots = []
    for channel_id in channel_ids:
        snapshot = stats_store.get_channel_snapshot(channel_id)
        if snapshot is not None:
            snapshots.append(snapshot)
    return snapshots


@router.get(
    "/stats/channels/{channel_id}",
    response_model=Snapshot,
    response_model_exclude_none=True,
    summary="Channel snapshot",
)
async def get_channel_stats(channel_id: str, stats_store: StatsStoreDep) -> Snapshot:
    snapshot = stats_store.get_channel_snapshot(channel_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No stats for channel '{channel_id}'",
        )
    return snapshot


@router.get(
    "/channels/{channel_id}/ownership",
    response_model=ChannelOwnershipOut,
    summary="Channel drill-down: binding and the share the next sync applies",
)
async def get_channel_ownership(
    channel_id: str, stats_store: StatsStoreDep
) -> ChannelOwnershipOut:
    ownership = (await _load_resolver(stats_store)).for_channel(channel_id)
    if ownership is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Channel '{channel_id}' is not bound",
        )

    return ChannelOwnershipOut(
        channel_external_id=ownership.binding.channel_external_id,
        owner_id=ownership.binding.owner_id,
        channel_name=ownership.binding.channel_name,
        resolved=ownership.is_resolved,
        revenue_share_percent=(
            ownership.share.revenue_share_percent if ownership.share else None
        ),
    )


@router.put(
    "/owners/{owner_id}",
    response_model=OwnerOut,
    summary="Upsert owner",
    dependencies=[Depends(require_admin)],
)
async def upsert_owner(owner_id: str, payload: OwnerUpsert) -> OwnerOut:
    owner = _local_directory().upsert_owner(
        owner_id,
        payload.revenue_share_percent,
        username=payload.username,
        status=payload.status,
    )
    logger.info(
        "Owner %s share set to %s%%", owner.owner_id, owner.revenue_share_percent
    )
    return OwnerOut(
        owner_id=owner.owner_id,
        revenue_share_percent=owner.revenue_share_percent,
        username=owner.username,
        status=owner.status,
    )


@router.get(
    "/owners/{owner_id}/channels",
    response_model=list[ChannelBindingOut],
    summary="Channels bound to an owner",
)
async def list_owner_channels(owner_id: str) -> list[ChannelBindingOut]:
    return [
        ChannelBindingOut(
            channel_external_id=binding.channel_external_id,
            owner_id=binding.owner_id,
            channel_name=binding.channel_name,
        )
        for binding in _local_directory().list_owner_channels(owner_id)
    ]


@router.put(
    "/channels/{channel_id}/binding",
    response_model=ChannelBindingOut,
    summary="Bind channel to owner (replaces prior binding)",
    dependencies=[Depends(require_admin)],
)
async def bind_channel(channel_id: str, payload: ChannelBindingIn) -> ChannelBindingOut:
    binding = _local_directory().bind_channel(
        channel_id, payload.owner_id, payload.channel_name
    )
    logger.info("Channel %s bound to owner %s", channel_id, payload.owner_id)
    return ChannelBindingOut(
        channel_external_id=binding.channel_external_id,
        owner_id=binding.owner_id,
        channel_name=binding.channel_name,
    )


@router.delete(
    "/channels/{channel_id}/binding",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a channel binding",
    dependencies=[Depends(require_admin)],
)
async def unbind_channel(channel_id: str) -> None:
    if not _local_directory().unbind_channel(channel_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Channel '{channel_id}' is not bound",
        )
    logger.info("Channel %s unbound", channel_id)
