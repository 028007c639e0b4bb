"""
Time utilities for the collaboration tracker.

This module provides a single source of truth for time operations,
so server-assigned timestamps (comments, memberships, token expiry)
all come from the same clock.
"""

from datetime import datetime, timezone, timedelta


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def expires_in(minutes: int) -> datetime:
    """
    Calculate an expiry instant relative to now.

    Args:
        minutes: Number of minutes from now

    Returns:
        timezone-aware datetime in UTC
    """
    return utc_now() + timedelta(minutes=minutes)
