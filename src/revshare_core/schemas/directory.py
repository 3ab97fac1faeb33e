"""Pydantic models for ownership directory administration."""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class OwnerUpsert(BaseModel):
    """Owner create/update payload."""

    revenue_share_percent: Decimal = Field(..., ge=0, le=100)
    username: str = ""
    status: str = "active"


class OwnerOut(BaseModel):
    owner_id: str
    revenue_share_percent: Decimal
    username: str
    status: str


class ChannelBindingIn(BaseModel):
    """Bind a channel to an owner (replaces any prior binding)."""

    owner_id: str = Field(..., min_length=1)
    channel_name: Optional[str] = None


class ChannelBindingOut(BaseModel):
    channel_external_id: str
    owner_id: str
    channel_name: Optional[str] = None
