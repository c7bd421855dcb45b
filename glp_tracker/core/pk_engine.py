"""
PK-Engine: single-compartment exponential decay for injected GLP-1 agonists.

Model:
  Each injection contributes dose * 0.5^(t / t_half) from the moment it is
  given; absorption lag is ignored. Contributions add linearly:

      L(t) = SUM_i D_i * 0.5^((t - tau_i) / t_half_i) * H(t - tau_i)

  The Heaviside term H drops injections that have not happened yet at t.
  A second gate drops injections dated after "now" unless the caller passes
  include_future (premium users planning ahead).

Time is milliseconds since epoch throughout. The wall clock is never read in
here: callers pass `now` explicitly.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from glp_tracker.config import (
    FUTURE_WINDOW_BUFFER_HOURS,
    PHASE_CRUISE_HOURS,
    PHASE_PEAK_HOURS,
    TIMEZONE,
    WINDOW_DAYS,
)
from glp_tracker.core.substances import find_substance, normalize_substance_id

MS_PER_HOUR = 60 * 60 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR


@dataclass(frozen=True)
class DosingEvent:
    timestamp: int          # ms since epoch
    substance_id: str
    dose_mg: float
    site: Optional[str] = None


@dataclass
class LevelSample:
    time: float
    level: float
    label: Optional[str] = None
    is_future: Optional[bool] = None
    levels: Optional[dict[str, float]] = None

    def to_dict(self) -> dict:
        """Flat chart row: fixed fields plus one key per tracked substance."""
        row = {"time": self.time, "level": self.level}
        if self.label is not None:
            row["label"] = self.label
        if self.is_future is not None:
            row["is_future"] = self.is_future
        if self.levels:
            row.update(self.levels)
        return row


# ── Decay model ──────────────────────────────────────────────────────

def decay_fraction(elapsed_hours: float, half_life_hours: float) -> float:
    """Residual fraction of a dose after elapsed_hours: 0.5^(dt / t_half)."""
    return 0.5 ** (elapsed_hours / half_life_hours)


# ── Level aggregation (linear superposition) ─────────────────────────

def _contribution(event: DosingEvent, at_time: float, include_future: bool,
                  now: float) -> float:
    substance = find_substance(event.substance_id)
    if substance is None:
        return 0.0
    # Non-premium: planned injections stay invisible even when at_time is ahead
    if not include_future and event.timestamp > now:
        return 0.0
    if at_time < event.timestamp:
        return 0.0
    hours_since = (at_time - event.timestamp) / MS_PER_HOUR
    return event.dose_mg * decay_fraction(hours_since, substance.half_life_hours)


def compute_level(
    events: Iterable[DosingEvent],
    at_time: float,
    include_future: bool,
    now: float,
) -> float:
    """
    Combined residual level (mg) of all substances at at_time.
    Events with an unknown substance contribute nothing.
    """
    return sum(
        (_contribution(e, at_time, include_future, now) for e in events),
        0.0,
    )


def compute_substance_level(
    events: Iterable[DosingEvent],
    substance_id: str,
    at_time: float,
    include_future: bool,
    now: float,
) -> float:
    """Residual level of one substance; legacy ids match their current id."""
    if find_substance(substance_id) is None:
        return 0.0
    target = normalize_substance_id(substance_id)
    return sum(
        (
            _contribution(e, at_time, include_future, now)
            for e in events
            if normalize_substance_id(e.substance_id) == target
        ),
        0.0,
    )


def levels_by_substance(
    events: list[DosingEvent],
    at_time: float,
    include_future: bool,
    now: float,
) -> dict[str, float]:
    """Per-substance levels for every (normalised) substance present in events."""
    ids = sorted({normalize_substance_id(e.substance_id) for e in events
                  if find_substance(e.substance_id) is not None})
    return {
        sid: compute_substance_level(events, sid, at_time, include_future, now)
        for sid in ids
    }


# ── Curve generation ─────────────────────────────────────────────────

def _sample_times(start: float, end: float, point_count: int) -> list[float]:
    if point_count <= 0:
        return [start]
    span = end - start
    return [start + span * i / point_count for i in range(point_count + 1)]


def generate_curve(
    events: list[DosingEvent],
    start: float,
    end: float,
    point_count: int,
    include_future: bool,
    now: float,
) -> list[LevelSample]:
    """
    Combined level sampled at point_count + 1 evenly spaced instants
    covering [start, end] inclusive.
    """
    return [
        LevelSample(time=t, level=compute_level(events, t, include_future, now))
        for t in _sample_times(start, end, point_count)
    ]


def format_chart_label(time_ms: float, tz: Optional[str] = None) -> str:
    """Short day.month. label, e.g. '7.3.'"""
    dt = datetime.fromtimestamp(time_ms / 1000.0, tz=ZoneInfo(tz or TIMEZONE))
    return f"{dt.day}.{dt.month}."


def generate_substance_curves(
    events: list[DosingEvent],
    substance_ids: list[str],
    start: float,
    end: float,
    point_count: int,
    include_future: bool,
    now: float,
    tz: Optional[str] = None,
) -> list[LevelSample]:
    """
    One sample per grid instant carrying a level for every requested substance
    id (keyed as requested), a date label and an is_future flag for styling.
    """
    distinct = {}
    for sid in substance_ids:
        distinct.setdefault(normalize_substance_id(sid), sid)

    points = []
    for t in _sample_times(start, end, point_count):
        levels = {
            sid: compute_substance_level(events, sid, t, include_future, now)
            for sid in substance_ids
        }
        points.append(LevelSample(
            time=t,
            level=sum(levels[sid] for sid in distinct.values()),
            label=format_chart_label(t, tz),
            is_future=t > now,
            levels=levels,
        ))
    return points


# ── Chart windows ────────────────────────────────────────────────────

def window_dates(range_name: str, offset_index: int, now: float) -> tuple[float, float]:
    """
    (start, end) in ms for a chart range, paged backwards by offset_index
    whole windows. Unknown ranges raise KeyError.
    """
    span = WINDOW_DAYS[range_name] * MS_PER_DAY
    end = now - offset_index * span
    return end - span, end


def chart_window(
    events: list[DosingEvent],
    range_name: str,
    offset_index: int,
    now: float,
    include_future: bool,
) -> tuple[float, float]:
    """
    Like window_dates, but the current page of a premium user reaches one day
    past the last planned injection.
    """
    start, end = window_dates(range_name, offset_index, now)
    if not include_future or offset_index != 0:
        return start, end

    future = [e.timestamp for e in events if e.timestamp > now]
    if not future:
        return start, end
    extension = (max(future) - now) + FUTURE_WINDOW_BUFFER_HOURS * MS_PER_HOUR
    return start, end + extension


# ── Traffic light ────────────────────────────────────────────────────

def traffic_phase(events: list[DosingEvent], now: float) -> str:
    """
    Coarse phase from hours since the most recent injection given by now:
    peak (<48h), cruise (<120h), washout, or none without history.
    """
    given = [e.timestamp for e in events if e.timestamp <= now]
    if not given:
        return "none"
    hours_since = (now - max(given)) / MS_PER_HOUR
    if hours_since < PHASE_PEAK_HOURS:
        return "peak"
    if hours_since < PHASE_CRUISE_HOURS:
        return "cruise"
    return "washout"


def now_ms() -> int:
    """Wall clock in ms; for callers at the edge (API, dashboard)."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)
