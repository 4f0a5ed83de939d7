"""
Clock helpers — timestamp formatting and parsing.
"""

from __future__ import annotations

import time
from datetime import date, datetime, timezone
from typing import Callable, Optional

from dateutil import parser as date_parser

# Injectable wall clock, seconds since the epoch
Clock = Callable[[], float]

system_clock: Clock = time.time


def to_iso(ts: Optional[float] = None) -> str:
    """Format an epoch timestamp (default: now) as ISO-8601 UTC with a Z suffix."""
    if ts is None:
        ts = time.time()
    return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")


def parse_date(value: str) -> date:
    """
    Parse an ISO date or datetime string into a date.

    Raises:
        ValueError: If the string is not ISO-8601
    """
    return date_parser.isoparse(value).date()
