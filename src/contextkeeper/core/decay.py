"""Temporal decay / forgetting curve."""

from __future__ import annotations

from datetime import datetime, timezone

DEFAULT_HALF_LIFE_DAYS = 60.0


def days_since(moment: datetime, now: datetime | None = None) -> float:
    """Age of *moment* in days. Future timestamps count as age 0."""
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max((now - moment).total_seconds() / 86400, 0.0)


def temporal_decay(
    score: float,
    days: float,
    half_life: float = DEFAULT_HALF_LIFE_DAYS,
) -> float:
    """Return ``score * 0.5 ** (days / half_life)``.

    Non-increasing in *days*, equal to *score* at day 0 and never negative.
    """
    if score <= 0:
        return 0.0
    half_life = half_life if half_life > 0 else DEFAULT_HALF_LIFE_DAYS
    return score * 0.5 ** (max(days, 0.0) / half_life)
