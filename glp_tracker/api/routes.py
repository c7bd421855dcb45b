"""
FastAPI API routes for GLP-Tracker.
"""

import logging
import math
from dataclasses import asdict
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil.parser import parse as parse_date
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel, Field

from glp_tracker.config import (
    API_KEY,
    CHART_POINTS,
    DEFAULT_SUBSTANCE_ID,
    PEN_CLICKS_FULL_SCALE,
    SYRINGE_SIZES_ML,
    TIMEZONE,
    WINDOW_DAYS,
)
from glp_tracker.core.database import (
    delete_injection,
    get_injection,
    get_profile,
    insert_injection,
    load_events,
    query_injections,
    update_injection,
    update_profile,
)
from glp_tracker.core.dosing import (
    concentration,
    mg_from_units,
    pen_clicks,
    syringe_fill_pct,
    units_from_mg,
    vial_doses,
)
from glp_tracker.core.pk_engine import (
    MS_PER_DAY,
    chart_window,
    compute_level,
    generate_curve,
    generate_substance_curves,
    levels_by_substance,
    now_ms,
    traffic_phase,
)
from glp_tracker.core.policy import has_premium_access, policy_from_profile
from glp_tracker.core.substances import (
    LEGACY_SUBSTANCE_IDS,
    SUBSTANCES,
    find_pens,
    find_substance,
    known_substance_ids,
    normalize_substance_id,
)
from glp_tracker.core.titration import next_injection, titration_for_latest

log = logging.getLogger("glp.api")

router = APIRouter(prefix="/api")

_RANGE_PATTERN = "^(" + "|".join(WINDOW_DAYS) + ")$"


# --- Auth ---

def verify_api_key(x_api_key: str = Header(default="")):
    if API_KEY and x_api_key != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


# --- Models ---

class InjectionRequest(BaseModel):
    substance_id: str
    dose_mg: float = Field(..., gt=0, le=100)
    site: Optional[str] = None
    timestamp_ms: Optional[int] = None
    timestamp: Optional[str] = None  # ISO 8601, used when timestamp_ms is absent


class InjectionUpdateRequest(BaseModel):
    dose_mg: Optional[float] = Field(None, gt=0, le=100)
    site: Optional[str] = None
    timestamp_ms: Optional[int] = None
    timestamp: Optional[str] = None


class ProfileRequest(BaseModel):
    default_substance_id: Optional[str] = None
    custom_interval_enabled: Optional[bool] = None
    injection_interval_days: Optional[float] = Field(None, ge=1, le=30)
    half_day_dosing: Optional[bool] = None
    is_premium: Optional[bool] = None
    premium_permanent: Optional[bool] = None
    premium_until: Optional[int] = None


CALC_LIMITS = dict(gt=0, le=1000, allow_inf_nan=False)


class UnitsRequest(BaseModel):
    want_mg: float = Field(..., **CALC_LIMITS)
    vial_mg: float = Field(..., **CALC_LIMITS)
    vial_ml: float = Field(..., **CALC_LIMITS)
    syringe_ml: float = Field(1.0, **CALC_LIMITS)


class MgRequest(BaseModel):
    units: float = Field(..., **CALC_LIMITS)
    vial_mg: float = Field(..., **CALC_LIMITS)
    vial_ml: float = Field(..., **CALC_LIMITS)


class PenClicksRequest(BaseModel):
    want_mg: float = Field(..., **CALC_LIMITS)
    pen_total_mg: float = Field(..., **CALC_LIMITS)


class VialDosesRequest(BaseModel):
    vial_mg: float = Field(..., **CALC_LIMITS)
    dose_want_mg: float = Field(..., **CALC_LIMITS)


# --- Helpers ---

def _resolve_timestamp(timestamp_ms: Optional[int], timestamp: Optional[str]) -> Optional[int]:
    """ms wins over ISO text; naive ISO times are read in the configured TZ."""
    if timestamp_ms is not None:
        return timestamp_ms
    if not timestamp:
        return None
    try:
        dt = parse_date(timestamp)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=422, detail=f"Invalid timestamp: {timestamp}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(TIMEZONE))
    return int(dt.timestamp() * 1000)


def _require_known_substance(substance_id: str):
    if find_substance(substance_id) is None:
        raise HTTPException(status_code=422, detail=f"Unknown substance: {substance_id}")


def _guard_future(timestamp_ms: Optional[int], profile: dict, now: int):
    if timestamp_ms is not None and timestamp_ms > now and not has_premium_access(profile, now):
        raise HTTPException(status_code=403, detail="Planning future injections requires premium")


def _require_finite(**values):
    """422 instead of an Infinity the JSON encoder would choke on."""
    bad = sorted(name for name, value in values.items() if not math.isfinite(value))
    if bad:
        raise HTTPException(status_code=422, detail=f"Result out of range: {', '.join(bad)}")


def _substance_dict(substance) -> dict:
    return {
        "substance_id": substance.substance_id,
        "name": substance.name,
        "us_name": substance.us_name,
        "color": substance.color,
        "half_life_hours": substance.half_life_hours,
        "recommended_interval_days": substance.recommended_interval_days,
        "common_doses": list(substance.common_doses),
        "typical_max_dose": substance.typical_max_dose,
        "pens": [asdict(pen) for pen in find_pens(substance.substance_id)],
    }


# --- Endpoints ---

@router.get("/status")
def status():
    """Health check endpoint."""
    return {
        "service": "glp-tracker",
        "status": "ok",
        "version": "1.0.0",
        "timestamp": datetime.now().isoformat(),
        "model": "one-compartment-exponential",
    }


@router.get("/substances", dependencies=[Depends(verify_api_key)])
def list_substances():
    """Reference table, pens and the legacy id map."""
    return {
        "substances": [_substance_dict(s) for s in SUBSTANCES],
        "legacy_ids": LEGACY_SUBSTANCE_IDS,
    }


@router.post("/injections", dependencies=[Depends(verify_api_key)])
def log_injection(req: InjectionRequest):
    """Record an injection. Future dates need premium."""
    if req.substance_id not in known_substance_ids(include_legacy=True):
        raise HTTPException(status_code=422, detail=f"Unknown substance: {req.substance_id}")

    now = now_ms()
    ts = _resolve_timestamp(req.timestamp_ms, req.timestamp)
    _guard_future(ts, get_profile(), now)

    row_id = insert_injection(req.substance_id, req.dose_mg, ts, req.site)
    log.info("Injection logged: %s %.2f mg (#%d)", req.substance_id, req.dose_mg, row_id)
    return {"status": "ok", **get_injection(row_id)}


@router.get("/injections", dependencies=[Depends(verify_api_key)])
def get_injections(start: Optional[int] = None, end: Optional[int] = None):
    """Query injection records (ms bounds, newest first)."""
    return query_injections(start, end)


@router.patch("/injections/{injection_id}", dependencies=[Depends(verify_api_key)])
def edit_injection(injection_id: int, req: InjectionUpdateRequest):
    """Correct the date, dose or site of an injection."""
    if get_injection(injection_id) is None:
        raise HTTPException(status_code=404, detail="Injection not found")

    now = now_ms()
    ts = _resolve_timestamp(req.timestamp_ms, req.timestamp)
    _guard_future(ts, get_profile(), now)

    update_injection(injection_id, timestamp_ms=ts, dose_mg=req.dose_mg, site=req.site)
    return {"status": "ok", **get_injection(injection_id)}


@router.delete("/injections/{injection_id}", dependencies=[Depends(verify_api_key)])
def delete_injection_route(injection_id: int):
    """Delete an injection by ID."""
    deleted = delete_injection(injection_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Injection not found")
    return {"deleted": injection_id, "status": "ok"}


@router.get("/profile", dependencies=[Depends(verify_api_key)])
def get_profile_route():
    """Dosing profile plus the policy derived from it."""
    now = now_ms()
    profile = get_profile()
    policy = policy_from_profile(profile, now)
    return {
        "profile": profile,
        "policy": {
            "custom_interval_enabled": policy.custom_interval_enabled,
            "injection_interval_days": policy.injection_interval_days,
            "half_day_dosing_enabled": policy.half_day_dosing_enabled,
            "include_future_events": policy.include_future_events,
        },
    }


@router.put("/profile", dependencies=[Depends(verify_api_key)])
def put_profile(req: ProfileRequest):
    """Update dosing profile fields that are present in the body."""
    fields = req.model_dump(exclude_unset=True)
    for key in ("default_substance_id", "custom_interval_enabled", "half_day_dosing",
                "is_premium", "premium_permanent"):
        if key in fields and fields[key] is None:
            del fields[key]
    if fields.get("default_substance_id") is not None:
        _require_known_substance(fields["default_substance_id"])
    update_profile(**fields)
    return get_profile_route()


@router.get("/level", dependencies=[Depends(verify_api_key)])
def get_level(at: Optional[int] = None):
    """Combined and per-substance level at `at` (default: now)."""
    now = now_ms()
    at_time = at if at is not None else now
    policy = policy_from_profile(get_profile(), now)
    events = load_events()
    return {
        "timestamp": at_time,
        "level_mg": round(compute_level(events, at_time, policy.include_future_events, now), 4),
        "by_substance": {
            sid: round(level, 4)
            for sid, level in levels_by_substance(
                events, at_time, policy.include_future_events, now).items()
        },
        "phase": traffic_phase(events, now),
        "include_future": policy.include_future_events,
    }


@router.get("/level/curve", dependencies=[Depends(verify_api_key)])
def get_level_curve(
    start: Optional[int] = None,
    end: Optional[int] = None,
    points: int = Query(default=CHART_POINTS, ge=0, le=2000),
):
    """Combined level curve over [start, end] (default: last 7 days)."""
    now = now_ms()
    end = end if end is not None else now
    start = start if start is not None else end - 7 * MS_PER_DAY
    if start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")

    policy = policy_from_profile(get_profile(), now)
    curve = generate_curve(load_events(), start, end, points, policy.include_future_events, now)
    return {
        "start": start,
        "end": end,
        "include_future": policy.include_future_events,
        "points": [p.to_dict() for p in curve],
    }


@router.get("/level/curves", dependencies=[Depends(verify_api_key)])
def get_level_curves(
    range_name: str = Query(default="month", alias="range", pattern=_RANGE_PATTERN),
    offset: int = Query(default=0, ge=0),
    points: int = Query(default=CHART_POINTS, ge=0, le=2000),
    substances: Optional[list[str]] = Query(default=None),
):
    """Per-substance curves for a chart window, paged back by `offset`."""
    now = now_ms()
    profile = get_profile()
    policy = policy_from_profile(profile, now)
    events = load_events()

    if substances:
        for sid in substances:
            _require_known_substance(sid)
        substance_ids = substances
    else:
        substance_ids = sorted({
            normalize_substance_id(e.substance_id) for e in events
            if find_substance(e.substance_id) is not None
        }) or [profile.get("default_substance_id", DEFAULT_SUBSTANCE_ID)]

    start, end = chart_window(events, range_name, offset, now, policy.include_future_events)
    curve = generate_substance_curves(
        events, substance_ids, start, end, points, policy.include_future_events, now,
    )
    has_data = any(p.levels[sid] > 0 for p in curve for sid in substance_ids)
    return {
        "range": range_name,
        "offset": offset,
        "start": start,
        "end": end,
        "now": now,
        "include_future": policy.include_future_events,
        "substances": substance_ids,
        "has_data": has_data,
        "points": [p.to_dict() for p in curve],
    }


@router.get("/titration", dependencies=[Depends(verify_api_key)])
def get_titration():
    """Next recommended dose for the most recently used substance."""
    now = now_ms()
    profile = get_profile()
    policy = policy_from_profile(profile, now)
    result = titration_for_latest(load_events(), policy, now)
    if result is None:
        default = find_substance(profile.get("default_substance_id", DEFAULT_SUBSTANCE_ID))
        return {
            "found": False,
            "starting_dose": default.common_doses[0] if default else None,
        }
    substance_id, recommendation = result
    return {"found": True, "substance_id": substance_id, **recommendation.to_dict()}


@router.get("/schedule/next", dependencies=[Depends(verify_api_key)])
def get_next_injection():
    """When the next injection is due."""
    now = now_ms()
    policy = policy_from_profile(get_profile(), now)
    result = next_injection(load_events(), policy, now)
    if result is None:
        return {"found": False}
    return {"found": True, **result}


# --- Calculator ---

@router.post("/calc/units", dependencies=[Depends(verify_api_key)])
def calc_units(req: UnitsRequest):
    """mg -> syringe units for a reconstituted vial."""
    units = units_from_mg(req.want_mg, req.vial_mg, req.vial_ml)
    _require_finite(units=units, doses_per_vial=req.vial_mg / req.want_mg)
    doses = vial_doses(req.vial_mg, req.want_mg)
    return {
        "units": round(units, 2),
        "concentration_mg_per_ml": round(concentration(req.vial_mg, req.vial_ml), 4),
        "syringe_fill_pct": round(syringe_fill_pct(units, req.syringe_ml), 1),
        "doses_per_vial": doses.doses,
        "remnant_mg": doses.remnant,
        "syringe_sizes_ml": list(SYRINGE_SIZES_ML),
    }


@router.post("/calc/mg", dependencies=[Depends(verify_api_key)])
def calc_mg(req: MgRequest):
    """Syringe units -> mg."""
    mg = mg_from_units(req.units, req.vial_mg, req.vial_ml)
    _require_finite(mg=mg)
    return {"mg": round(mg, 4)}


@router.post("/calc/pen-clicks", dependencies=[Depends(verify_api_key)])
def calc_pen_clicks(req: PenClicksRequest):
    """Clicks to dial for a dose on a 60-click pen."""
    _require_finite(clicks=req.want_mg / req.pen_total_mg * PEN_CLICKS_FULL_SCALE)
    return {"clicks": pen_clicks(req.want_mg, req.pen_total_mg)}


@router.post("/calc/vial-doses", dependencies=[Depends(verify_api_key)])
def calc_vial_doses(req: VialDosesRequest):
    """Whole doses per vial and leftover mg."""
    _require_finite(doses=req.vial_mg / req.dose_want_mg)
    doses = vial_doses(req.vial_mg, req.dose_want_mg)
    return {"doses": doses.doses, "remnant": doses.remnant}
