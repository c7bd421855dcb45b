"""
Dosing calculator: mg <-> syringe units, pen clicks, doses per vial.

Plain arithmetic. Inputs are assumed positive; callers (the API models, the
dashboard widgets) validate before calling, nothing here guards a zero divisor.
"""

import math
from typing import NamedTuple

from glp_tracker.config import PEN_CLICKS_FULL_SCALE, UNITS_PER_ML


class VialDoses(NamedTuple):
    doses: int
    remnant: float


def concentration(vial_mg: float, vial_ml: float) -> float:
    """Reconstituted concentration in mg/ml."""
    return vial_mg / vial_ml


def units_from_mg(want_mg: float, vial_mg: float, vial_ml: float) -> float:
    """Insulin-syringe units (IU) holding want_mg; 100 IU = 1 ml."""
    return (want_mg / concentration(vial_mg, vial_ml)) * UNITS_PER_ML


def mg_from_units(units: float, vial_mg: float, vial_ml: float) -> float:
    return (units / UNITS_PER_ML) * concentration(vial_mg, vial_ml)


def pen_clicks(want_mg: float, pen_total_mg: float) -> int:
    """Dial clicks for want_mg on a 60-click pen, nearest click (halves round up)."""
    return int(math.floor(want_mg / pen_total_mg * PEN_CLICKS_FULL_SCALE + 0.5))


def vial_doses(vial_mg: float, dose_want_mg: float) -> VialDoses:
    """
    Whole doses a vial yields and the leftover mg.
    A dose larger than the vial gives (0, vial_mg).
    """
    # round() absorbs float noise such as 0.3 / 0.1 = 2.9999999999999996
    doses = math.floor(round(vial_mg / dose_want_mg, 9))
    remnant = round(vial_mg - doses * dose_want_mg, 9)
    return VialDoses(doses=int(doses), remnant=remnant)


def syringe_fill_pct(units: float, syringe_ml: float) -> float:
    """How full a syringe of syringe_ml gets at `units`, capped at 100 %."""
    scale = syringe_ml * UNITS_PER_ML
    return min(100.0, units / scale * 100.0)
