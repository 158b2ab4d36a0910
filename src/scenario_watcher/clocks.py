"""
Clock utilities for scenario-watcher.

All timestamps written to outcome records come from here so that every
record carries timezone-aware UTC datetimes (never naive datetimes).
"""

from __future__ import annotations
from datetime import datetime, timezone as tz


def now_utc() -> datetime:
    """
    Return the current UTC time.

    Returns
    -------
    datetime.datetime
        Timezone-aware datetime in UTC.

    Examples
    --------
    >>> from scenario_watcher.clocks import now_utc
    >>> t = now_utc()
    >>> t.tzinfo
    datetime.timezone.utc
    """
    return datetime.now(tz.utc)
