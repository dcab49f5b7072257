"""Freshness gate for cached records.

Records only carry the time they were fetched; whether they are still usable
is decided at read time against a TTL from settings.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from finora.core.data_helpers import ensure_utc, utc_now


def is_fresh(
    last_fetched_at: datetime | None,
    ttl: timedelta,
    now: datetime | None = None,
) -> bool:
    """Return True when ``now - last_fetched_at`` is strictly below ``ttl``.

    A missing timestamp is always stale.
    """
    if last_fetched_at is None:
        return False
    current = ensure_utc(now) or utc_now()
    return (current - ensure_utc(last_fetched_at)) < ttl
