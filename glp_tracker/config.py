"""
GLP-Tracker Configuration.
All settings via environment variables with sensible defaults.
"""

import os
from pathlib import Path

# --- Paths ---
BASE_DIR = Path(os.getenv("GLP_DATA_DIR", "/data"))
DB_PATH = BASE_DIR / "glp.db"

# --- Auth ---
API_KEY = os.getenv("GLP_API_KEY", "")

# --- Timezone (chart labels) ---
TIMEZONE = os.getenv("TZ", "Europe/Prague")

# --- Logging ---
LOG_LEVEL = os.getenv("GLP_LOG_LEVEL", "INFO").upper()

# --- Dashboard ---
API_URL = os.getenv("GLP_API_URL", "http://localhost:8000")

# --- Charting ---
CHART_POINTS: int = int(os.getenv("GLP_CHART_POINTS", "100"))
FUTURE_WINDOW_BUFFER_HOURS: float = 24.0  # chart runs 1 day past the last planned shot

# --- Titration ---
# Manufacturers recommend 4 weekly injections at a dose before stepping up
TITRATION_MIN_INJECTIONS: int = int(os.getenv("GLP_TITRATION_MIN_INJECTIONS", "4"))
DOSE_TOLERANCE_MG: float = float(os.getenv("GLP_DOSE_TOLERANCE_MG", "0.1"))

# --- Schedule ---
DEFAULT_SUBSTANCE_ID = os.getenv("GLP_DEFAULT_SUBSTANCE", "tirz")
DEFAULT_INTERVAL_DAYS: float = float(os.getenv("GLP_DEFAULT_INTERVAL_DAYS", "7"))
CUSTOM_INTERVAL_MIN_DAYS: float = 1.0
CUSTOM_INTERVAL_MAX_DAYS: float = 30.0

# --- Traffic light (hours since last injection) ---
PHASE_PEAK_HOURS: float = 48.0
PHASE_CRUISE_HOURS: float = 120.0  # 5 days

# --- Dosing calculator ---
UNITS_PER_ML: float = 100.0        # U-100 insulin syringe: 100 IU = 1 ml
PEN_CLICKS_FULL_SCALE: int = 60    # clicks for one full pen dial
SYRINGE_SIZES_ML = (1.0, 0.5, 0.3)

# --- Chart windows (days back) ---
WINDOW_DAYS = {
    "week": 7,
    "month": 30,
    "three_months": 90,
    "six_months": 180,
    "all": 365 * 2,
}
