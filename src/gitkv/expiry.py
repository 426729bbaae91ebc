"""Expiry day-index codec.

Expiry dates are stored as integer day indices counted from a fixed time origin,
modulo a lifetime. Bounding the index keeps the number of distinct expiry commits
bounded; a TTL at or beyond the lifetime is equivalent to persistence.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

TIME_ORIGIN = datetime(2025, 1, 1, tzinfo=timezone.utc)

LIFETIME_DAYS = 10002

# Deletion happens one day after expiry, so the maximum TTL must stay below the lifetime.
MAX_TTL_DAYS = LIFETIME_DAYS - 1

_DAY = timedelta(days=1)


def _now(now: datetime | None = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def get_today(now: datetime | None = None) -> datetime:
    """Last second of the current UTC day."""
    return _now(now).replace(hour=23, minute=59, second=59, microsecond=0)


def date_to_id(when: datetime | None = None) -> int:
    interval_days = math.floor((_now(when) - TIME_ORIGIN) / _DAY)
    return interval_days % LIFETIME_DAYS


def yesterday_id(now: datetime | None = None) -> int:
    """Index of yesterday. Data that expired yesterday is removed today."""
    return date_to_id(_now(now) - _DAY)


def days_between(id_begin: int, id_end: int) -> int:
    return ((id_end - id_begin) + LIFETIME_DAYS) % LIFETIME_DAYS


def _check_index(index: int) -> None:
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < LIFETIME_DAYS:
        raise ValueError(f"Index must be within [0, {LIFETIME_DAYS - 1}]")


def id_to_date(index: int, now: datetime | None = None) -> datetime:
    _check_index(index)
    today = get_today(now)
    id_today = date_to_id(today)
    if index == id_today:
        return today
    if index == yesterday_id(now):
        return today - _DAY

    # Stale indices are assumed collected, so any other index lies ahead of today.
    return today + days_between(id_today, index) * _DAY


def get_expiry(ttl_days: int | float, now: datetime | None = None) -> datetime:
    """Expiry date for a TTL in days. ttl_days=-1 yields an already-stale date for GC testing.

    Fractional TTLs are floored to whole days first, so a remaining TTL from
    get_ttl_days() round-trips.
    """
    if (
        isinstance(ttl_days, bool)
        or not isinstance(ttl_days, (int, float))
        or not math.isfinite(ttl_days)
    ):
        raise ValueError(f"TTL must be within [-1, {MAX_TTL_DAYS - 1}]")
    days = math.floor(ttl_days)
    if not -1 <= days <= MAX_TTL_DAYS - 1:
        raise ValueError(f"TTL must be within [-1, {MAX_TTL_DAYS - 1}]")
    return get_today(now) + days * _DAY


def get_ttl_days(expiry: datetime, now: datetime | None = None) -> float:
    """Days remaining until `expiry`, possibly fractional; 0 once it has passed."""
    current = _now(now)
    expiry = _now(expiry)
    if expiry < current:
        return 0
    return (expiry - current) / _DAY


def is_stale(index: int | None, now: datetime | None = None) -> bool:
    return index is not None and index == yesterday_id(now)
