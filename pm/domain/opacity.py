from datetime import datetime

from ..core.constants import (
    FULL_VISIBLE_MS, FLOOR_VISIBLE_MS, OPACITY_FULL, OPACITY_FLOOR,
    OPACITY_SLOPE, OPACITY_INTERCEPT,
)


def age_ms(created_at: datetime, now: datetime) -> float:
    return (now - created_at).total_seconds() * 1000.0


def opacity_for_age(created_at: datetime, now: datetime) -> float:
    """
    Marker opacity for a point of the given age:
    - fully visible for the first 3 hours (also for clock skew / future timestamps)
    - 0.1 past 12 hours (the server only returns 12h of points, so rarely hit)
    - linear fade from 1.0 to 0.1 in between
    """
    ms = age_ms(created_at, now)
    if ms < FULL_VISIBLE_MS:
        return OPACITY_FULL
    elif ms > FLOOR_VISIBLE_MS:
        return OPACITY_FLOOR
    return ms * OPACITY_SLOPE + OPACITY_INTERCEPT
