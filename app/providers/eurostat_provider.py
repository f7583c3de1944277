# app/providers/eurostat_provider.py
from __future__ import annotations

"""
Eurostat provider (dissemination API, JSON-stat 2.0) for Euro Econ Map
- GDP (annual):           nama_10_gdp, na_item=B1GQ, unit=CP_MEUR, geo=<eurostat geo>
- Unemployment (monthly): une_rt_m, age=TOTAL, sex=T, unit=PC_ACT, s_adj=SA
- HICP annual rate (monthly): prc_hicp_manr, coicop=CP00
- Population (annual, 1 Jan): demo_pjan, sex=T, age=TOTAL

Batch (overlay) requests hit an aggregate dataset with lastTimePeriod=1 and a
list of geo codes; see INDICATOR_MATRIX for the per-indicator choice.

Notes:
- Values are keyed by a flat index over all dimensions listed in `id`, with
  cardinalities in `size` (row-major, last dimension fastest). We decode that
  index into per-dimension positions instead of assuming only time varies.
- Positions listed under extension["positions-with-no-data"]["time"] are
  dropped even when a sentinel value is present.
- Geo codes use Eurostat spellings (EL = Greece, UK = United Kingdom).
"""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import httpx

from app.providers.base import (
    SOURCE_PRIMARY,
    BatchResult,
    EmptyResult,
    SourceAdapter,
    UpstreamError,
    chunked,
)
from app.services.indicator_matrix import IndicatorKind, indicator_spec
from app.utils.country_codes import CountryIdentifier, eurostat_code
from app.utils.series_math import EmptySeriesError, Series, apply_conversion, normalize_series

logger = logging.getLogger("euromap.eurostat")

# ------------------------------------------------------------------------------
# Config
# ------------------------------------------------------------------------------
EUROSTAT_BASE_URL = os.getenv(
    "EUROSTAT_BASE_URL",
    "https://ec.europa.eu/eurostat/api/dissemination/statistics/1.0/data",
)
TIMEOUT = float(os.getenv("EUROSTAT_TIMEOUT_SEC", "10.0"))
BATCH_CHUNK = int(os.getenv("EUROSTAT_BATCH_CHUNK", "40"))

# EU / euro-area aggregates returned alongside member states in batch datasets
_AGGREGATE_PREFIXES = ("EU", "EA")


# ------------------------------------------------------------------------------
# JSON-stat decoding
# ------------------------------------------------------------------------------
class _Cube:
    """Dimension bookkeeping for one JSON-stat dataset response."""

    def __init__(self, payload: Mapping[str, Any]):
        if not isinstance(payload, Mapping):
            raise UpstreamError("Eurostat payload is not an object", source="Eurostat")
        if "error" in payload:
            err = payload.get("error")
            label = err.get("label") if isinstance(err, Mapping) else err
            raise UpstreamError(f"Eurostat error: {label}", source="Eurostat")

        ids = payload.get("id")
        sizes = payload.get("size")
        dims = payload.get("dimension")
        if not isinstance(ids, list) or not isinstance(sizes, list) or not isinstance(dims, Mapping):
            raise UpstreamError("Eurostat payload lacks id/size/dimension", source="Eurostat")
        if len(ids) != len(sizes):
            raise UpstreamError("Eurostat id/size length mismatch", source="Eurostat")

        try:
            self._parse(ids, sizes, dims, payload)
        except (TypeError, ValueError, AttributeError) as e:
            raise UpstreamError(f"Eurostat payload is malformed: {e}", source="Eurostat") from e

        self.time_dim = next((d for d in self.ids if d.lower() == "time"), None)
        if self.time_dim is None:
            raise UpstreamError("Eurostat payload has no time dimension", source="Eurostat")

    def _parse(
        self,
        ids: List[Any],
        sizes: List[Any],
        dims: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> None:
        self.ids: List[str] = [str(i) for i in ids]
        self.sizes: List[int] = [int(s) for s in sizes]
        # dimension name -> {position: category code}
        self.labels: Dict[str, Dict[int, str]] = {}
        # dimension name -> {category code: position}
        self.positions: Dict[str, Dict[str, int]] = {}
        for dim_id in self.ids:
            dim = dims.get(dim_id) or {}
            if not isinstance(dim, Mapping):
                raise TypeError(f"dimension {dim_id!r} is not an object")
            cat = dim.get("category") or {}
            index = cat.get("index")
            if isinstance(index, list):
                pos = {str(code): i for i, code in enumerate(index)}
            elif isinstance(index, Mapping):
                pos = {str(code): int(i) for code, i in index.items()}
            else:
                # single-category dims may omit the index and only carry a label
                labels = cat.get("label") or {}
                pos = {str(code): i for i, code in enumerate(labels)}
            self.positions[dim_id] = pos
            self.labels[dim_id] = {i: code for code, i in pos.items()}

        raw_values = payload.get("value")
        if raw_values is None:
            raw_values = {}
        if isinstance(raw_values, list):
            raw_values = {str(i): v for i, v in enumerate(raw_values)}
        if not isinstance(raw_values, Mapping):
            raise UpstreamError("Eurostat value block is malformed", source="Eurostat")
        self.values: Mapping[str, Any] = raw_values

        ext = payload.get("extension") or {}
        no_data = (ext.get("positions-with-no-data") or {}) if isinstance(ext, Mapping) else {}
        self.no_data: Dict[str, Set[int]] = {
            str(dim): {int(p) for p in positions}
            for dim, positions in no_data.items()
            if isinstance(positions, list)
        }

    def decode(self, flat: int) -> Dict[str, int]:
        """Flat value index -> {dimension: position} (row-major)."""
        out: Dict[str, int] = {}
        rem = flat
        for dim_id, size in zip(reversed(self.ids), reversed(self.sizes)):
            if size <= 0:
                raise UpstreamError("Eurostat dimension with zero size", source="Eurostat")
            out[dim_id] = rem % size
            rem //= size
        return out

    def observations(self) -> List[Tuple[Dict[str, int], Any]]:
        """(positions, raw value) for every cell not flagged as no-data."""
        total = 1
        for s in self.sizes:
            total *= s
        out: List[Tuple[Dict[str, int], Any]] = []
        for key, raw in self.values.items():
            try:
                flat = int(key)
            except (TypeError, ValueError):
                continue
            if flat < 0 or flat >= total:
                continue
            pos = self.decode(flat)
            flagged = any(pos.get(dim) in blocked for dim, blocked in self.no_data.items())
            if flagged:
                continue
            out.append((pos, raw))
        return out

    def time_label(self, pos: Mapping[str, int]) -> Optional[str]:
        return self.labels[self.time_dim].get(pos[self.time_dim])


def parse_time_series(payload: Mapping[str, Any]) -> List[Tuple[str, Any]]:
    """
    Single-country response -> [(period label, raw value)].
    Non-time dimensions should be pinned by filters; if one still varies we
    keep its first category.
    """
    cube = _Cube(payload)
    out: List[Tuple[str, Any]] = []
    for pos, raw in cube.observations():
        if any(p != 0 for dim, p in pos.items() if dim != cube.time_dim):
            continue
        label = cube.time_label(pos)
        if label is not None:
            out.append((label, raw))
    return out


def parse_batch(
    payload: Mapping[str, Any],
    unit: Optional[str] = None,
) -> Dict[str, List[Tuple[str, Any]]]:
    """
    Multi-geo response -> {geo code: [(period label, raw value)]}.
    When a unit dimension is present only `unit` is kept (first unit if None
    or absent from the response). Aggregates (EU*, EA*) are dropped.
    """
    cube = _Cube(payload)
    if "geo" not in cube.positions:
        raise UpstreamError("Eurostat batch payload has no geo dimension", source="Eurostat")

    keep: Dict[str, int] = {}
    if "unit" in cube.positions:
        keep["unit"] = cube.positions["unit"].get(unit, 0) if unit else 0

    out: Dict[str, List[Tuple[str, Any]]] = {}
    for pos, raw in cube.observations():
        if any(
            p != keep.get(dim, 0)
            for dim, p in pos.items()
            if dim not in ("geo", cube.time_dim)
        ):
            continue
        geo = cube.labels["geo"].get(pos["geo"])
        if geo is None or geo.startswith(_AGGREGATE_PREFIXES):
            continue
        label = cube.time_label(pos)
        if label is not None:
            out.setdefault(geo, []).append((label, raw))
    return out


# ------------------------------------------------------------------------------
# Adapter
# ------------------------------------------------------------------------------
class EurostatAdapter(SourceAdapter):
    """Primary source."""

    name = "Eurostat"
    source_label = SOURCE_PRIMARY
    chunk_size = BATCH_CHUNK

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = TIMEOUT,
        base_url: str = EUROSTAT_BASE_URL,
    ):
        super().__init__(client, timeout)
        self._base = base_url.rstrip("/")

    def translate_country_code(self, country: CountryIdentifier) -> Optional[str]:
        return eurostat_code(country.code)

    def _url(self, dataset: str) -> str:
        return f"{self._base}/{dataset}"

    async def fetch_series(self, indicator: IndicatorKind, country: CountryIdentifier) -> Series:
        geo = self._require_code(country)
        spec = indicator_spec(indicator)["eurostat"]
        params: Dict[str, str] = {**spec["filters"], "geo": geo, "format": "JSON", "lang": "en"}

        payload = await self._get(self._url(spec["dataset"]), params)
        pairs = parse_time_series(payload)
        try:
            series = normalize_series(pairs)
        except EmptySeriesError:
            raise EmptyResult(
                f"Eurostat has no {indicator.value} observations for {country.name}",
                source=self.name,
                country=country.code,
            ) from None

        logger.info("Eurostat: %s/%s -> %d observations", geo, indicator.value, len(series.historical))
        return apply_conversion(series, spec.get("conversion"))

    async def fetch_batch(
        self,
        indicator: IndicatorKind,
        countries: Sequence[CountryIdentifier],
    ) -> BatchResult:
        spec = indicator_spec(indicator)["eurostat"]
        by_geo = self._codes_for(countries)
        out: BatchResult = {}

        for chunk in chunked(by_geo.keys(), self.chunk_size):
            params: List[Tuple[str, str]] = [(k, v) for k, v in spec["batch_filters"].items()]
            params += [("geo", g) for g in chunk]
            params += [("lastTimePeriod", "1"), ("format", "JSON"), ("lang", "en")]

            payload = await self._get(self._url(spec["batch_dataset"]), params)
            rows = parse_batch(payload, unit=spec.get("batch_unit"))

            for geo in chunk:
                pairs = rows.get(geo)
                if not pairs:
                    continue
                try:
                    series = apply_conversion(normalize_series(pairs), spec.get("conversion"))
                except EmptySeriesError:
                    continue
                for country in by_geo[geo]:
                    out[country.code] = series

        logger.info(
            "Eurostat batch %s: %d/%d countries",
            indicator.value, len(out), len(countries),
        )
        return out
