"""Charity priority window.

A stateless comparison against wall-clock time on every read; there is no
background job that flips a flag when the window closes.
"""

from datetime import datetime, timedelta

from src.core.config import settings
from src.shared.utils.time import ensure_utc


def priority_deadline(created_at: datetime, minutes: int | None = None) -> datetime:
    """priority_until for a listing created at `created_at` with priority requested."""
    window = settings.priority_window_minutes if minutes is None else minutes
    return ensure_utc(created_at) + timedelta(minutes=window)


def is_priority_active(listing, now: datetime) -> bool:
    if listing.priority_until is None:
        return False
    return ensure_utc(now) < ensure_utc(listing.priority_until)


def priority_seconds_remaining(listing, now: datetime) -> int | None:
    """Countdown shown to organisations; None once the window has closed."""
    if not is_priority_active(listing, now):
        return None
    delta = ensure_utc(listing.priority_until) - ensure_utc(now)
    return max(0, int(delta.total_seconds()))
