"""Safe datetime helpers for ISO timestamps and publication dates."""

from datetime import datetime, timezone
from typing import Union, Optional
import logging

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with a trailing Z."""
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


def ensure_dt(x: Union[datetime, float, int, str, None]) -> Optional[datetime]:
    """
    Convert various timestamp formats to datetime objects safely.

    Args:
        x: Timestamp in various formats (datetime, epoch float/int, ISO string, etc.)

    Returns:
        datetime object or None if conversion fails
    """
    if x is None:
        return None

    if isinstance(x, datetime):
        return x

    if isinstance(x, (int, float)):
        try:
            timestamp = float(x)
            if timestamp > 1e10:  # Likely milliseconds
                timestamp = timestamp / 1000
            return datetime.fromtimestamp(timestamp, tz=timezone.utc)
        except (ValueError, OSError, OverflowError) as e:
            logger.debug(f"Failed to convert timestamp {x} to datetime: {e}")
            return None

    if isinstance(x, str):
        s = x.strip()
        try:
            return datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            pass

        formats = [
            "%Y-%m-%d",
            "%Y-%m",
            "%Y",
            "%Y/%m/%d",
            "%d %b %Y",
            "%b %Y",
        ]
        for fmt in formats:
            try:
                return datetime.strptime(s, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

        logger.debug(f"Failed to parse datetime string: {x}")
        return None

    return None


def publication_year(x: Union[datetime, float, int, str, None]) -> Optional[int]:
    """Year component of a publication date, or None when unparseable."""
    dt = ensure_dt(x)
    return dt.year if dt is not None else None
