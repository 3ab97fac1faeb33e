"""Pydantic models for raw analytics export records."""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


LooseValue = Optional[Union[str, int, float]]


class RawUsageRecord(BaseModel):
    """One export row as produced by the spreadsheet parser.

    Values are kept loosely typed; numeric coercion happens in the
    row normalizer so garbled values become zero instead of a 422.
    """

    model_config = ConfigDict(extra="ignore")

    date: LooseValue = None
    channelId: LooseValue = None
    videoTitle: LooseValue = None
    country: LooseValue = None
    views: LooseValue = None
    premiumViews: LooseValue = None
    grossRevenue: LooseValue = None


class SyncRequest(BaseModel):
    """Request payload for a sync batch."""

    batch_id: Optional[str] = Field(
        None, description="Client-provided batch id (generated when omitted)"
    )
    rows: list[RawUsageRecord] = Field(..., description="Export rows (non-empty)")
