from datetime import datetime
from typing import Optional

from dateutil import parser as date_parser

from ..services.google_calendar_client import to_utc_naive


def parse_client_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string from a request into naive UTC; None when unparsable"""
    if not value or not isinstance(value, str):
        return None
    try:
        return to_utc_naive(date_parser.isoparse(value.strip()))
    except (ValueError, OverflowError):
        return None


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Serialise a stored naive-UTC datetime with an explicit Z suffix"""
    if value is None:
        return None
    return to_utc_naive(value).isoformat() + "Z"


def duration_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)
