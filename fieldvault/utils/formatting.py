"""
Presentation helpers for sizes and trash ages.

These live next to the retention policy because the trash view renders
"expires in N days" from the same constant the cleanup uses.
"""

import math
from datetime import datetime, timedelta

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: int | float) -> str:
    """
    Format a byte count as a human-readable string.

    Args:
        num_bytes: Size in bytes

    Returns:
        String such as "0 B", "1023 B", "1.5 KB" or "1 GB"
    """
    if num_bytes <= 0:
        return "0 B"

    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1

    # Drop trailing zeros so 1024 renders as "1 KB"
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[unit]}"


def format_relative_time(timestamp: datetime, now: datetime | None = None) -> str:
    """
    Format a past timestamp relative to now.

    Args:
        timestamp: Moment in the past
        now: Reference time (default: datetime.now())

    Returns:
        "just now", "N seconds ago", "N minutes ago", ... "N months ago"
    """
    now = now or datetime.now()
    seconds = int((now - timestamp).total_seconds())

    if seconds < 5:
        return "just now"
    if seconds < 60:
        return f"{seconds} seconds ago"
    if seconds < 3600:
        return f"{seconds // 60} minutes ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 604800:
        return f"{seconds // 86400} days ago"
    if seconds < 2592000:
        return f"{seconds // 604800} weeks ago"
    return f"{seconds // 2592000} months ago"


def days_until_expiration(
    trashed_at: datetime, retention_days: int, now: datetime | None = None
) -> int:
    """
    Whole days left before a trashed item becomes eligible for cleanup.

    Args:
        trashed_at: When the item was trashed
        retention_days: Retention window in days
        now: Reference time (default: datetime.now())

    Returns:
        Remaining days rounded up, never negative
    """
    now = now or datetime.now()
    remaining = (trashed_at + timedelta(days=retention_days)) - now
    return max(0, math.ceil(remaining.total_seconds() / 86400))
