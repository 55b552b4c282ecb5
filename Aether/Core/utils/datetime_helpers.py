"""Shared datetime utilities for AETHER playbooks.

Run results carry start/completion timestamps. The timezone comes from
the AETHER_TIMEZONE environment variable (default: UTC), so timestamps
line up with the show controller's own logs.

Usage:
    from Aether.Core.utils.datetime_helpers import now, elapsed_seconds

    started = now()
    ...
    duration = elapsed_seconds(started)
"""
import os
from datetime import datetime
from typing import Optional

import pytz

DEFAULT_TIMEZONE = "UTC"


def get_timezone() -> pytz.BaseTzInfo:
    """
    Get the configured timezone.

    Falls back to UTC when AETHER_TIMEZONE names an unknown zone.
    """
    name = os.environ.get("AETHER_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(DEFAULT_TIMEZONE)


def now() -> datetime:
    """
    Get current time in the configured timezone.

    Returns:
        Timezone-aware datetime.
    """
    return datetime.now(get_timezone())


def elapsed_seconds(started_at: datetime, ended_at: Optional[datetime] = None) -> float:
    """Seconds between started_at and ended_at (default: now)."""
    return ((ended_at or now()) - started_at).total_seconds()
