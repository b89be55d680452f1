"""UTC timezone enforcement.

Sets the TZ environment variable to UTC and provides the timezone-aware UTC
clock used for every persisted timestamp.
"""

import os
from datetime import datetime, timezone

# Set UTC timezone for the entire application
os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Current UTC time, timezone-aware (matches the TIMESTAMPTZ columns)."""
    return datetime.now(timezone.utc)


def iso_timestamp() -> str:
    """Current UTC time as an ISO-8601 string with a trailing Z, for wire payloads."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
