"""Timezone utilities for KubeForge."""

from datetime import datetime
from zoneinfo import ZoneInfo

from kubeforge.config import settings


def get_now() -> datetime:
    """
    Get current datetime in the configured timezone.

    Returns:
        Timezone-aware datetime in the configured timezone
    """
    try:
        tz = ZoneInfo(settings.timezone)
        return datetime.now(tz)
    except Exception:
        # Fallback to UTC if timezone is invalid
        return datetime.now(ZoneInfo("UTC"))
