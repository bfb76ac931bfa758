"""Timezone helpers bound to the configured zone."""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from filevault.core.config import get_settings


def get_timezone() -> ZoneInfo:
    return get_settings().timezone_info


def now() -> datetime:
    """Current time in the configured zone; used for soft-delete markers."""
    return datetime.now(get_timezone())
