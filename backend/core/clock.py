# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""UTC helpers.  Services take a ``clock`` callable so tests can move time."""

from datetime import datetime, timezone
from typing import Optional

# Stand-in for "forever" on deactivated accounts; fits MySQL DATETIME
PERMANENT_LOCKOUT = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns.  Everything is stored in UTC, so naive means UTC.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
