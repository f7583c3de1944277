from __future__ import annotations

"""
Canonical time-series model shared by every provider.

- TimePoint / Series are immutable; Series.latest is derived from history
- normalize_series() turns raw (period, value) pairs into a valid Series
- GDP helpers rebase provider values to million EUR at a fixed FX rate

Period labels accepted by parse_period():
    "2023"      -> 2023-01-01
    "2023-07"   -> 2023-07-01   (also "2023M07")
    "2023-Q3"   -> 2023-07-01   (first month of the quarter)
    "2023-S2"   -> 2023-07-01
    "2023-07-15" is taken as-is
"""

import math
import os
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

# ------------------------------------------------------------------------------
# Config
# ------------------------------------------------------------------------------
# Fixed approximation, not live FX. Override via env when rebasing to a newer rate.
USD_TO_EUR_RATE = float(os.getenv("USD_TO_EUR_RATE", "0.92"))
GDP_MAGNITUDE = 1_000_000  # canonical GDP unit: million EUR

_RE_YEAR = re.compile(r"^(\d{4})$")
_RE_MONTH = re.compile(r"^(\d{4})-?M?(\d{2})$")
_RE_QUARTER = re.compile(r"^(\d{4})-?Q([1-4])$")
_RE_SEMESTER = re.compile(r"^(\d{4})-?S([12])$")
_RE_DAY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class EmptySeriesError(ValueError):
    """Raised when no valid observation survives normalization."""


@dataclass(frozen=True)
class TimePoint:
    date: date
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "value": self.value}


@dataclass(frozen=True)
class Series:
    """Ascending, non-empty history; `latest` is always the last point's value."""

    historical: Tuple[TimePoint, ...]

    def __post_init__(self) -> None:
        if not self.historical:
            raise EmptySeriesError("series has no observations")
        for p in self.historical:
            if isinstance(p.value, bool) or not math.isfinite(p.value):
                raise ValueError(f"non-finite value at {p.date.isoformat()}: {p.value!r}")
        for prev, cur in zip(self.historical, self.historical[1:]):
            if cur.date <= prev.date:
                raise ValueError(f"series not strictly ascending at {cur.date.isoformat()}")

    @property
    def latest(self) -> float:
        return self.historical[-1].value

    @property
    def latest_date(self) -> date:
        return self.historical[-1].date

    def pairs(self) -> List[Tuple[date, float]]:
        return [(p.date, p.value) for p in self.historical]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latest": self.latest,
            "latest_date": self.latest_date.isoformat(),
            "historical": [p.to_dict() for p in self.historical],
        }


# ------------------------------------------------------------------------------
# Coercion
# ------------------------------------------------------------------------------
def parse_period(label: Union[str, int, date]) -> date:
    if isinstance(label, date):
        return label
    if isinstance(label, int):
        return date(label, 1, 1)

    s = str(label).strip()
    m = _RE_YEAR.match(s)
    if m:
        return date(int(m.group(1)), 1, 1)
    m = _RE_DAY.match(s)
    if m:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _RE_QUARTER.match(s)
    if m:
        return date(int(m.group(1)), (int(m.group(2)) - 1) * 3 + 1, 1)
    m = _RE_SEMESTER.match(s)
    if m:
        return date(int(m.group(1)), 1 if m.group(2) == "1" else 7, 1)
    m = _RE_MONTH.match(s)
    if m:
        month = int(m.group(2))
        if 1 <= month <= 12:
            return date(int(m.group(1)), month, 1)
    raise ValueError(f"unrecognised period label: {label!r}")


def coerce_value(v: Any) -> Optional[float]:
    """Float or None; None/NaN/inf/non-numeric (and bools) are all invalid."""
    if v is None or isinstance(v, bool):
        return None
    try:
        fv = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(fv) or math.isinf(fv):
        return None
    return fv


def normalize_series(pairs: Iterable[Tuple[Any, Any]]) -> Series:
    """
    Build a Series from raw (period, value) pairs.

    Invalid values and unparseable periods are dropped; when the same date
    appears twice the later pair wins. Raises EmptySeriesError if nothing
    survives. Normalizing an existing Series' pairs returns an equal Series.
    """
    by_date: Dict[date, float] = {}
    for period, raw in pairs:
        fv = coerce_value(raw)
        if fv is None:
            continue
        try:
            d = parse_period(period)
        except ValueError:
            continue
        by_date[d] = fv

    if not by_date:
        raise EmptySeriesError("no valid observations")
    return Series(tuple(TimePoint(d, by_date[d]) for d in sorted(by_date)))


def convert_series(series: Series, fn: Callable[[float], float]) -> Series:
    return Series(tuple(TimePoint(p.date, fn(p.value)) for p in series.historical))


# ------------------------------------------------------------------------------
# GDP unit reconciliation (canonical unit: million EUR)
# ------------------------------------------------------------------------------
def usd_to_eur_millions(value: float, rate: Optional[float] = None) -> float:
    """Absolute USD -> million EUR."""
    r = USD_TO_EUR_RATE if rate is None else rate
    return value * r / GDP_MAGNITUDE


def eur_millions(value: float) -> float:
    """Values already published in million EUR (Eurostat CP_MEUR)."""
    return value


CONVERSIONS: Dict[str, Callable[[float], float]] = {
    "none": lambda v: v,
    "eur_millions": eur_millions,
    "usd_to_eur_millions": usd_to_eur_millions,
}


def apply_conversion(series: Series, rule: Optional[str]) -> Series:
    if not rule or rule == "none":
        return series
    fn = CONVERSIONS.get(rule)
    if fn is None:
        raise KeyError(f"unknown conversion rule: {rule}")
    return convert_series(series, fn)


# ------------------------------------------------------------------------------
# Display helpers (map panel key metrics)
# ------------------------------------------------------------------------------
def format_gdp(meur: float) -> str:
    if meur >= 1e6:
        return f"€{round(meur / 1e6)}T"
    return f"€{round(meur / 1e3)}B"


def format_population(n: float) -> str:
    if n >= 1e9:
        return f"{round(n / 1e9)}B"
    return f"{round(n / 1e6)}M"


def format_percent(v: float) -> str:
    return f"{v:.2f}%"
