"""
pandas helpers for the dashboard charts.
Kept apart from streamlit_app.py, which renders on import.
"""

from typing import Optional

import pandas as pd

from glp_tracker.config import TIMEZONE


def ms_to_local(values, tz: Optional[str] = None):
    """ms since epoch -> wall-clock time in the configured zone, tz-naive for Plotly."""
    zone = tz or TIMEZONE
    if isinstance(values, pd.Series):
        return pd.to_datetime(values, unit="ms", utc=True).dt.tz_convert(zone).dt.tz_localize(None)
    return pd.to_datetime(values, unit="ms", utc=True).tz_convert(zone).tz_localize(None)
