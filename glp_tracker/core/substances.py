"""
Substance reference table for GLP-1 / GIP receptor agonists.

Half-lives and titration ladders follow the manufacturers' labels:
  - Tirzepatide (Mounjaro / Zepbound): t1/2 ~5 d, 2.5 mg steps up to 15 mg
  - Semaglutide (Wegovy): t1/2 ~7 d, 0.25 -> 2.4 mg
  - Semaglutide (Ozempic): t1/2 ~7 d, 0.25 -> 2 mg
  - Liraglutide (Saxenda): t1/2 ~13 h, daily, 0.6 -> 3.0 mg
  - Retatrutide (investigational): t1/2 ~6 d, 1 -> 12 mg

Retired identifiers from older records are mapped through LEGACY_SUBSTANCE_IDS
everywhere an id is resolved or compared.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SubstanceDescriptor:
    substance_id: str
    name: str
    us_name: str
    color: str
    half_life_hours: float
    recommended_interval_days: float
    common_doses: tuple[float, ...]
    typical_max_dose: float


@dataclass(frozen=True)
class PenOption:
    label: str
    mg: float          # dose per injection
    total_mg: float    # total content of the pen
    doses: int
    color: str


SUBSTANCES: tuple[SubstanceDescriptor, ...] = (
    SubstanceDescriptor(
        substance_id="tirz",
        name="Tirzepatide (Mounjaro)",
        us_name="Zepbound / Mounjaro",
        color="#AF52DE",
        half_life_hours=120.0,
        recommended_interval_days=7,
        common_doses=(2.5, 5.0, 7.5, 10.0, 12.5, 15.0),
        typical_max_dose=15.0,
    ),
    SubstanceDescriptor(
        substance_id="wegovy",
        name="Wegovy",
        us_name="Wegovy",
        color="#007AFF",
        half_life_hours=168.0,
        recommended_interval_days=7,
        common_doses=(0.25, 0.5, 1.0, 1.7, 2.4),
        typical_max_dose=2.4,
    ),
    SubstanceDescriptor(
        substance_id="ozempic",
        name="Ozempic",
        us_name="Ozempic",
        color="#C8102E",
        half_life_hours=168.0,
        recommended_interval_days=7,
        common_doses=(0.25, 0.5, 1.0, 2.0),
        typical_max_dose=2.0,
    ),
    SubstanceDescriptor(
        substance_id="saxenda",
        name="Saxenda",
        us_name="Saxenda",
        color="#34C759",
        half_life_hours=13.0,
        recommended_interval_days=1,
        common_doses=(0.6, 1.2, 1.8, 2.4, 3.0),
        typical_max_dose=3.0,
    ),
    SubstanceDescriptor(
        substance_id="reta",
        name="Retatrutide",
        us_name="Retatrutide",
        color="#FF9500",
        half_life_hours=144.0,
        recommended_interval_days=7,
        common_doses=(1.0, 2.0, 4.0, 8.0, 12.0),
        typical_max_dose=12.0,
    ),
)

_SUBSTANCES_BY_ID = {s.substance_id: s for s in SUBSTANCES}

# Old "sema" records are Wegovy, old "lira" records are Saxenda
LEGACY_SUBSTANCE_IDS = {
    "sema": "wegovy",
    "lira": "saxenda",
}

# Pens: 4 fixed doses per pen unless stated otherwise
PEN_DATABASE: dict[str, tuple[PenOption, ...]] = {
    "tirz": (
        PenOption("2.5 mg", 2.5, 10.0, 4, "#6B7280"),
        PenOption("5 mg", 5.0, 20.0, 4, "#14B8A6"),
        PenOption("7.5 mg", 7.5, 30.0, 4, "#22C55E"),
        PenOption("10 mg", 10.0, 40.0, 4, "#3B82F6"),
        PenOption("12.5 mg", 12.5, 50.0, 4, "#8B5CF6"),
        PenOption("15 mg", 15.0, 60.0, 4, "#7C3AED"),
    ),
    "wegovy": (
        PenOption("0.25 mg", 0.25, 1.0, 4, "#FFD100"),
        PenOption("0.5 mg", 0.5, 2.0, 4, "#C8102E"),
        PenOption("1 mg", 1.0, 4.0, 4, "#00A9E0"),
        PenOption("1.7 mg", 1.7, 6.8, 4, "#003DA5"),
        PenOption("2.4 mg", 2.4, 9.6, 4, "#1D1160"),
    ),
    "ozempic": (
        PenOption("0.25 mg", 0.25, 1.0, 4, "#6B7280"),
        PenOption("0.5 mg", 0.5, 2.0, 4, "#C8102E"),
        PenOption("1 mg", 1.0, 4.0, 4, "#22C55E"),
        PenOption("2 mg", 2.0, 8.0, 4, "#F97316"),
    ),
    # 3 ml pen at 6 mg/ml, dialled per dose
    "saxenda": (
        PenOption("6 mg/ml", 3.0, 18.0, 6, "#00A651"),
    ),
    "reta": (
        PenOption("Generic Vial", 10.0, 10.0, 1, "#FF9500"),
    ),
}


def _check_table():
    for s in SUBSTANCES:
        doses = s.common_doses
        if not doses:
            raise ValueError(f"{s.substance_id}: empty dose ladder")
        if any(b < a for a, b in zip(doses, doses[1:])):
            raise ValueError(f"{s.substance_id}: dose ladder not ascending")
        if s.typical_max_dose < max(doses):
            raise ValueError(f"{s.substance_id}: typical_max_dose below ladder")
        if s.half_life_hours <= 0:
            raise ValueError(f"{s.substance_id}: half-life must be positive")


_check_table()


def normalize_substance_id(substance_id: str) -> str:
    """Map a retired identifier to its current one; other ids pass through."""
    return LEGACY_SUBSTANCE_IDS.get(substance_id, substance_id)


def find_substance(substance_id: str) -> Optional[SubstanceDescriptor]:
    return _SUBSTANCES_BY_ID.get(normalize_substance_id(substance_id))


def find_pens(substance_id: str) -> list[PenOption]:
    return list(PEN_DATABASE.get(normalize_substance_id(substance_id), ()))


def known_substance_ids(include_legacy: bool = False) -> list[str]:
    ids = [s.substance_id for s in SUBSTANCES]
    if include_legacy:
        ids.extend(LEGACY_SUBSTANCE_IDS)
    return ids
