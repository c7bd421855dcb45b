"""
Per-user dosing policy and premium entitlement.

The profile row comes from the storage layer as a plain dict; this module turns
it into the DosingPolicy the engine and titration advisor consume.
"""

from dataclasses import dataclass
from typing import Optional

from glp_tracker.config import (
    CUSTOM_INTERVAL_MAX_DAYS,
    CUSTOM_INTERVAL_MIN_DAYS,
)


@dataclass(frozen=True)
class DosingPolicy:
    custom_interval_enabled: bool = False
    injection_interval_days: Optional[float] = None
    half_day_dosing_enabled: bool = False
    include_future_events: bool = False


def has_premium_access(profile: dict, now: float) -> bool:
    """Premium flag, permanent grant, or a premium_until (ms) still ahead of now."""
    if profile.get("is_premium") or profile.get("premium_permanent"):
        return True
    until = profile.get("premium_until")
    return until is not None and until > now


def normalize_interval_days(days: float, half_day_enabled: bool) -> float:
    """
    Clamp a custom interval to 1-30 days and snap it to the allowed step:
    half days (3.5, 4.5, ...) when half-day dosing is on, whole days otherwise.
    """
    days = max(CUSTOM_INTERVAL_MIN_DAYS, min(CUSTOM_INTERVAL_MAX_DAYS, days))
    if half_day_enabled:
        return _round_half_up(days * 2) / 2
    return float(_round_half_up(days))


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def policy_from_profile(profile: Optional[dict], now: float) -> DosingPolicy:
    if not profile:
        return DosingPolicy()

    half_day = bool(profile.get("half_day_dosing"))
    interval = profile.get("injection_interval_days")
    if interval is not None:
        interval = normalize_interval_days(float(interval), half_day)

    return DosingPolicy(
        custom_interval_enabled=bool(profile.get("custom_interval_enabled")),
        injection_interval_days=interval,
        half_day_dosing_enabled=half_day,
        include_future_events=has_premium_access(profile, now),
    )
