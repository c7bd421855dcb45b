"""
Titration advisor and injection schedule.

Manufacturer schedule: stay on a dose for TITRATION_MIN_INJECTIONS consecutive
injections, then step one rung up the substance's dose ladder. Users on a
custom interval manage their own schedule and get their last dose repeated.

Advisory only; nothing here blocks recording any dose.
"""

import math
from dataclasses import dataclass
from typing import Optional

from glp_tracker.config import (
    DEFAULT_INTERVAL_DAYS,
    DOSE_TOLERANCE_MG,
    TITRATION_MIN_INJECTIONS,
)
from glp_tracker.core.pk_engine import MS_PER_DAY, DosingEvent
from glp_tracker.core.policy import DosingPolicy
from glp_tracker.core.substances import (
    SubstanceDescriptor,
    find_substance,
    normalize_substance_id,
)


@dataclass(frozen=True)
class DoseRecommendation:
    dose: float
    is_max: bool
    is_custom: bool = False
    injections_remaining: Optional[int] = None

    def to_dict(self) -> dict:
        result = {"dose": self.dose, "is_max": self.is_max, "is_custom": self.is_custom}
        if self.injections_remaining is not None:
            result["injections_remaining"] = self.injections_remaining
        return result


def _most_recent_first(events: list[DosingEvent]) -> list[DosingEvent]:
    return sorted(events, key=lambda e: e.timestamp, reverse=True)


def _same_dose(a: float, b: float) -> bool:
    return abs(a - b) < DOSE_TOLERANCE_MG


def dose_streak(events: list[DosingEvent]) -> int:
    """Consecutive most-recent injections at the latest dose."""
    ordered = _most_recent_first(events)
    if not ordered:
        return 0
    current = ordered[0].dose_mg
    streak = 0
    for event in ordered:
        if not _same_dose(event.dose_mg, current):
            break
        streak += 1
    return streak


def ladder_index(common_doses: tuple[float, ...], dose: float) -> int:
    """Position of dose on the ladder, -1 when it is not a ladder dose."""
    return next(
        (i for i, rung in enumerate(common_doses) if _same_dose(rung, dose)),
        -1,
    )


def recommend_next_dose(
    events: list[DosingEvent],
    substance: SubstanceDescriptor,
    policy: DosingPolicy,
) -> Optional[DoseRecommendation]:
    """
    Next dose for one substance's history. None without history, so the
    caller can fall back to a starting dose.
    """
    if not events:
        return None

    current = _most_recent_first(events)[0].dose_mg

    if policy.custom_interval_enabled:
        return DoseRecommendation(
            dose=current,
            is_max=current >= substance.typical_max_dose,
            is_custom=True,
        )

    streak = dose_streak(events)
    index = ladder_index(substance.common_doses, current)

    # Off-ladder or top rung: stay put
    if index == -1 or index >= len(substance.common_doses) - 1:
        return DoseRecommendation(dose=current, is_max=True)

    if streak < TITRATION_MIN_INJECTIONS:
        return DoseRecommendation(
            dose=current,
            is_max=False,
            injections_remaining=TITRATION_MIN_INJECTIONS - streak,
        )

    return DoseRecommendation(dose=substance.common_doses[index + 1], is_max=False)


def _visible(events: list[DosingEvent], policy: DosingPolicy, now: float) -> list[DosingEvent]:
    if policy.include_future_events:
        return list(events)
    return [e for e in events if e.timestamp <= now]


def latest_known_event(events: list[DosingEvent]) -> Optional[DosingEvent]:
    known = [e for e in events if find_substance(e.substance_id) is not None]
    if not known:
        return None
    return _most_recent_first(known)[0]


def titration_for_latest(
    events: list[DosingEvent],
    policy: DosingPolicy,
    now: float,
) -> Optional[tuple[str, DoseRecommendation]]:
    """
    Run the advisor on the substance of the most recent visible injection.
    Returns (substance_id, recommendation) or None.
    """
    visible = _visible(events, policy, now)
    latest = latest_known_event(visible)
    if latest is None:
        return None

    substance = find_substance(latest.substance_id)
    target = substance.substance_id
    history = [e for e in visible if normalize_substance_id(e.substance_id) == target]
    recommendation = recommend_next_dose(history, substance, policy)
    if recommendation is None:
        return None
    return target, recommendation


# ── Schedule ─────────────────────────────────────────────────────────

def injection_interval_days(
    substance: Optional[SubstanceDescriptor],
    policy: DosingPolicy,
) -> float:
    """Custom interval when enabled, else the label interval, else a week."""
    if policy.custom_interval_enabled and policy.injection_interval_days:
        return policy.injection_interval_days
    if substance is not None:
        return substance.recommended_interval_days
    return DEFAULT_INTERVAL_DAYS


def next_injection(
    events: list[DosingEvent],
    policy: DosingPolicy,
    now: float,
) -> Optional[dict]:
    """
    When the next injection is due, counted from the last injection already
    given (timestamp <= now).
    """
    given = [e for e in events if e.timestamp <= now]
    last = latest_known_event(given)
    if last is None:
        return None

    substance = find_substance(last.substance_id)
    interval = injection_interval_days(substance, policy)
    due = last.timestamp + interval * MS_PER_DAY
    days_until = math.floor((due - now) / MS_PER_DAY + 0.5)

    return {
        "substance_id": substance.substance_id,
        "last_injection_at": last.timestamp,
        "last_dose_mg": last.dose_mg,
        "interval_days": interval,
        "next_injection_at": due,
        "days_until": days_until,
        "is_custom_interval": bool(
            policy.custom_interval_enabled and policy.injection_interval_days
        ),
    }
