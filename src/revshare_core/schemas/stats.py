"""Pydantic models for persisted stats snapshots."""
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DailyPoint(_CamelModel):
    """One day of a snapshot's time series."""

    date: str
    views: int
    premium_views: int
    net_revenue: Decimal
    gross_revenue: Optional[Decimal] = Field(
        None, description="Present only when the gross exposure policy allows it"
    )


class CountryPoint(_CamelModel):
    """Geographic breakdown entry."""

    country_code: str
    views: int
    net_revenue: Decimal


class ContentPoint(_CamelModel):
    """Content-level breakdown entry (e.g. one video title)."""

    label: str
    views: int
    net_revenue: Decimal


class Snapshot(_CamelModel):
    """Full-replacement report for one owner or one channel."""

    scope: Literal["owner", "channel"]
    key: str = Field(..., description="Owner id or channel external id")
    total_views: int
    total_premium_views: int
    total_net_revenue: Decimal
    total_gross_revenue: Optional[Decimal] = None
    daily_series: list[DailyPoint] = Field(default_factory=list)
    top_countries: list[CountryPoint] = Field(default_factory=list)
    top_content: list[ContentPoint] = Field(default_factory=list)
    last_synced_at: datetime

    def to_json(self) -> str:
        """Canonical JSON used for persistence."""
        return self.model_dump_json(by_alias=True, exclude_none=True)
