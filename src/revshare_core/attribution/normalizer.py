"""Row normalization for third-party analytics export records.

Any numeric field that cannot be coerced becomes zero, and so does any
value too large to be a real count or amount. A row is never
discarded here; exclusion happens only when ownership cannot be resolved.
"""
import logging
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from pydantic import BaseModel

from .revenue import MAX_MAGNITUDE, money_context, to_money


logger = logging.getLogger(__name__)


UNKNOWN_COUNTRY = "Unknown"
UNKNOWN_CONTENT = "Unknown Video"
UNKNOWN_DATE = "Unknown"

_ZERO = Decimal("0")


@dataclass(frozen=True)
class UsageRow:
    """One channel/day/country/video combination with canonical types."""

    date: str
    channel_external_id: str
    content_label: str
    country_code: str
    view_count: int
    premium_view_count: int
    gross_revenue: Decimal


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _safe_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, float):
        if not math.isfinite(value):
            return _ZERO
        # str() keeps the shortest repr, so 0.1 stays 0.1
        value = str(value)
    with money_context():
        try:
            result = Decimal(str(value).strip().replace(",", ""))
        except (InvalidOperation, ValueError):
            return _ZERO
        if not result.is_finite() or result.is_signed():
            return _ZERO
        if result.adjusted() > MAX_MAGNITUDE:
            logger.debug("Numeric value out of range, coerced to zero: %.40s", value)
            return _ZERO
    return result


def _safe_count(value: Any) -> int:
    return int(_safe_decimal(value))


def _safe_money(value: Any) -> Decimal:
    return to_money(_safe_decimal(value))


def normalize_row(record: Mapping[str, Any] | BaseModel) -> UsageRow:
    """Coerce one raw export record into a UsageRow.

    Args:
        record: dict or pydantic model with the export field names
            (date, channelId, videoTitle, country, views, premiumViews,
            grossRevenue)

    Returns:
        UsageRow with guaranteed-numeric fields
    """
    if isinstance(record, BaseModel):
        record = record.model_dump()

    return UsageRow(
        date=_clean_text(record.get("date")) or UNKNOWN_DATE,
        channel_external_id=_clean_text(record.get("channelId")),
        content_label=_clean_text(record.get("videoTitle")) or UNKNOWN_CONTENT,
        country_code=_clean_text(record.get("country")) or UNKNOWN_COUNTRY,
        view_count=_safe_count(record.get("views")),
        premium_view_count=_safe_count(record.get("premiumViews")),
        gross_revenue=_safe_money(record.get("grossRevenue")),
    )
