"""
Date and Time utilities

This module handles conversions between XMLTV timestamps, epoch milliseconds
and ISO8601 strings. All schedule arithmetic is done in UTC epoch millis.
"""
from datetime import datetime, timezone, timedelta
import logging

logger = logging.getLogger(__name__)


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def utc_now_millis() -> int:
    """Current UTC time in epoch milliseconds"""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600'

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the time string cannot be parsed
    """
    try:
        # Split time and timezone
        parts = time_str.strip().split()
        time_part = parts[0]  # YYYYMMDDHHMMSS
        tz_part = parts[1] if len(parts) > 1 else '+0000'

        dt = datetime.strptime(time_part[:14], '%Y%m%d%H%M%S')

        # Parse timezone offset (±HHMM)
        tz_sign = 1 if tz_part[0] == '+' else -1
        tz_hours = int(tz_part[1:3])
        tz_mins = int(tz_part[3:5])
    except (ValueError, IndexError) as e:
        raise DateFormatError(f"Invalid XMLTV time format: '{time_str}'") from e

    tz_offset_minutes = tz_sign * (tz_hours * 60 + tz_mins)
    dt_utc = dt - timedelta(minutes=tz_offset_minutes)
    return dt_utc.replace(tzinfo=timezone.utc)


def parse_xmltv_time_to_millis(time_str: str) -> int:
    """Convert XMLTV time format to UTC epoch milliseconds"""
    return datetime_to_millis(parse_xmltv_time(time_str))


def datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def millis_to_iso(value: int) -> str:
    """Render epoch milliseconds as an ISO8601 UTC string"""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
