# app/providers/wb_provider.py
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging
import os

import httpx

from app.providers.base import (
    SOURCE_SECONDARY,
    BatchResult,
    EmptyResult,
    SourceAdapter,
    UpstreamError,
    chunked,
)
from app.services.indicator_matrix import IndicatorKind, indicator_spec
from app.utils.country_codes import WB_ISO3, CountryIdentifier, wb_code
from app.utils.series_math import EmptySeriesError, Series, apply_conversion, normalize_series

logger = logging.getLogger("euromap.worldbank")

# -------------------------------------------------------------------
# CONFIG
# -------------------------------------------------------------------
WB_BASE = os.getenv("WB_BASE_URL", "https://api.worldbank.org/v2")
WB_TIMEOUT = float(os.getenv("WB_TIMEOUT", "10.0"))
WB_PER_PAGE = int(os.getenv("WB_PER_PAGE", "100"))
WB_BATCH_CHUNK = int(os.getenv("WB_BATCH_CHUNK", "50"))

# WB rows carry country.id as ISO2; map it back to ISO3 for attribution
_ISO2_TO_ISO3: Dict[str, str] = {k: v for k, v in WB_ISO3.items() if len(k) == 2}


# -------------------------------------------------------------------
# PAYLOAD
# -------------------------------------------------------------------
def wb_rows(payload: Any) -> List[Dict[str, Any]]:
    """
    WB returns: [ {metadata}, [rows...] ]  (rows may be null)
    Errors come back as a one-element list: [ {"message": [...]} ].
    """
    if not isinstance(payload, list) or not payload:
        raise UpstreamError("World Bank payload is not a list", source="World Bank")

    meta = payload[0]
    if isinstance(meta, dict) and meta.get("message"):
        msgs = meta.get("message") or []
        text = "; ".join(
            str(m.get("value") or m.get("key") or m) for m in msgs if isinstance(m, dict)
        ) or "unknown error"
        raise UpstreamError(f"World Bank error: {text}", source="World Bank")

    if len(payload) < 2:
        raise UpstreamError("World Bank payload lacks an observation list", source="World Bank")

    rows = payload[1]
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise UpstreamError("World Bank observation list is malformed", source="World Bank")
    return [r for r in rows if isinstance(r, dict)]


def wb_year_pairs(rows: List[Dict[str, Any]]) -> List[Tuple[str, Any]]:
    """Rows -> [(year label, raw value)]; year-only dates land on 1 January."""
    return [(str(r.get("date")), r.get("value")) for r in rows if r.get("date") is not None]


def _row_iso3(row: Dict[str, Any]) -> Optional[str]:
    iso3 = row.get("countryiso3code")
    if isinstance(iso3, str) and iso3.strip():
        return iso3.strip().upper()
    country = row.get("country")
    if not isinstance(country, Mapping):
        return None
    iso2 = country.get("id")
    if not isinstance(iso2, str):
        return None
    iso2 = iso2.strip().upper()
    return _ISO2_TO_ISO3.get(iso2)


# -------------------------------------------------------------------
# ADAPTER
# -------------------------------------------------------------------
class WorldBankAdapter(SourceAdapter):
    """Secondary source."""

    name = "World Bank"
    source_label = SOURCE_SECONDARY
    chunk_size = WB_BATCH_CHUNK

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = WB_TIMEOUT,
        base_url: str = WB_BASE,
    ):
        super().__init__(client, timeout)
        self._base = base_url.rstrip("/")

    def translate_country_code(self, country: CountryIdentifier) -> Optional[str]:
        return wb_code(country.code)

    def _url(self, codes: str, indicator: str) -> str:
        return f"{self._base}/country/{codes}/indicator/{indicator}"

    async def fetch_series(self, indicator: IndicatorKind, country: CountryIdentifier) -> Series:
        iso3 = self._require_code(country)
        spec = indicator_spec(indicator)["world_bank"]

        payload = await self._get(
            self._url(iso3, spec["indicator"]),
            {"format": "json", "per_page": WB_PER_PAGE},
        )
        rows = wb_rows(payload)
        try:
            series = normalize_series(wb_year_pairs(rows))
        except EmptySeriesError:
            raise EmptyResult(
                f"World Bank has no {indicator.value} observations for {country.name}",
                source=self.name,
                country=country.code,
            ) from None

        logger.info("World Bank: %s/%s -> %d observations", iso3, spec["indicator"], len(series.historical))
        return apply_conversion(series, spec.get("conversion"))

    async def fetch_batch(
        self,
        indicator: IndicatorKind,
        countries: Sequence[CountryIdentifier],
    ) -> BatchResult:
        spec = indicator_spec(indicator)["world_bank"]
        by_iso3 = self._codes_for(countries)
        out: BatchResult = {}

        for chunk in chunked(by_iso3.keys(), self.chunk_size):
            # mrnev=1: most recent non-empty value per country
            payload = await self._get(
                self._url(";".join(chunk), spec["indicator"]),
                {"format": "json", "mrnev": 1, "per_page": max(len(chunk), 1) * 2},
            )
            grouped: Dict[str, List[Dict[str, Any]]] = {}
            for row in wb_rows(payload):
                iso3 = _row_iso3(row)
                if iso3 in chunk:
                    grouped.setdefault(iso3, []).append(row)

            for iso3, rows in grouped.items():
                try:
                    series = apply_conversion(
                        normalize_series(wb_year_pairs(rows)), spec.get("conversion")
                    )
                except EmptySeriesError:
                    continue
                for country in by_iso3[iso3]:
                    out[country.code] = series

        logger.info(
            "World Bank batch %s: %d/%d countries",
            indicator.value, len(out), len(countries),
        )
        return out
