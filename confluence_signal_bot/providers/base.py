from __future__ import annotations

import re
from typing import Tuple

from ..errors import DataUnavailable
from ..models import CandleSeries

_INTERVAL_RE = re.compile(r"^(\d+)\s*(m|min|h|d|day|w|week)$", re.IGNORECASE)


def parse_interval(interval: str) -> Tuple[int, str]:
    """Split '15min' / '15m' / '1h' into (15, 'm') style pairs."""
    m = _INTERVAL_RE.match((interval or "").strip())
    if not m:
        raise ValueError(f"Unsupported interval: {interval!r}")
    n, unit = int(m.group(1)), m.group(2).lower()
    unit = {"min": "m", "day": "d", "week": "w"}.get(unit, unit)
    return n, unit


def ensure_filled(series: CandleSeries, limit: int, min_fill_ratio: float) -> CandleSeries:
    """Reject a payload that came back noticeably shorter than requested."""
    need = int(limit * float(min_fill_ratio))
    if len(series) < need:
        raise DataUnavailable(f"{series.symbol}: got {len(series)} candles, need at least {need} of {limit}")
    return series
