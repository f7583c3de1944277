# app/services/indicator_service.py — primary/secondary resolution + overlay cache
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.providers.base import (
    BatchResult,
    NoCoverage,
    NoDataAvailable,
    SourceAdapter,
    SourceError,
)
from app.services.indicator_matrix import IndicatorKind, indicator_spec
from app.utils.country_codes import CountryIdentifier
from app.utils.series_math import Series

logger = logging.getLogger("euromap.resolver")

OPACITY_MIN = 0.1
OPACITY_MAX = 0.8


@dataclass(frozen=True)
class Resolution:
    series: Series
    source: str        # provenance label: "Primary" / "Secondary"
    provider: str      # display name: "Eurostat" / "World Bank"

    def to_dict(self) -> Dict[str, Any]:
        return {**self.series.to_dict(), "source": self.source, "provider": self.provider}


@dataclass(frozen=True)
class BatchResolution:
    data: BatchResult
    sources: Dict[str, str] = field(default_factory=dict)  # code -> provenance label


@dataclass(frozen=True)
class CountryProfile:
    country: CountryIdentifier
    indicators: Dict[IndicatorKind, Resolution]

    @property
    def attribution(self) -> str:
        providers: List[str] = []
        for kind in IndicatorKind:
            res = self.indicators.get(kind)
            if res is not None and res.provider not in providers:
                providers.append(res.provider)
        return ", ".join(providers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "country": self.country.to_dict(),
            "data_source": self.attribution,
            "indicators": {k.value: r.to_dict() for k, r in self.indicators.items()},
        }


# -----------------------------------------------------------------------------
# Resolver
# -----------------------------------------------------------------------------

class IndicatorResolver:
    """
    Prefers the primary adapter and falls back to the secondary one.

    Single-country lookups never merge: the first source that succeeds wins.
    Batch lookups ask primary once for every covered country, then secondary
    once for the gap.
    """

    def __init__(self, primary: SourceAdapter, secondary: SourceAdapter):
        self.primary = primary
        self.secondary = secondary

    async def resolve(self, indicator: IndicatorKind, country: CountryIdentifier) -> Series:
        return (await self.resolve_with_source(indicator, country)).series

    async def resolve_with_source(
        self,
        indicator: IndicatorKind,
        country: CountryIdentifier,
    ) -> Resolution:
        primary_error: Optional[SourceError] = None

        if self.primary.translate_country_code(country) is None:
            primary_error = NoCoverage(
                f"{country.name} is not covered by {self.primary.name}",
                source=self.primary.name,
                country=country.code,
            )
        else:
            try:
                series = await self.primary.fetch_series(indicator, country)
            except SourceError as e:
                primary_error = e
            else:
                return Resolution(series, self.primary.source_label, self.primary.name)

        logger.info(
            "%s/%s: %s failed (%s), falling back to %s",
            country.code, indicator.value, self.primary.name, primary_error, self.secondary.name,
        )

        if self.secondary.translate_country_code(country) is None:
            raise NoDataAvailable(
                f"No {indicator.value} data available for {country.name}",
                primary_error=primary_error,
            ) from primary_error

        try:
            series = await self.secondary.fetch_series(indicator, country)
        except SourceError as e:
            logger.warning(
                "%s/%s: %s also failed (%s)", country.code, indicator.value, self.secondary.name, e
            )
            raise NoDataAvailable(
                f"No {indicator.value} data available for {country.name}: {primary_error}",
                primary_error=primary_error,
                secondary_error=e,
            ) from primary_error

        return Resolution(series, self.secondary.source_label, self.secondary.name)

    async def resolve_profile(self, country: CountryIdentifier) -> CountryProfile:
        """All four indicators concurrently; any failure fails the whole profile."""
        kinds = list(IndicatorKind)
        results = await asyncio.gather(*(self.resolve_with_source(k, country) for k in kinds))
        return CountryProfile(country, dict(zip(kinds, results)))

    async def _batch_from(
        self,
        adapter: SourceAdapter,
        indicator: IndicatorKind,
        countries: Sequence[CountryIdentifier],
    ) -> BatchResult:
        covered = [c for c in countries if adapter.translate_country_code(c) is not None]
        if not covered:
            return {}
        try:
            return await adapter.fetch_batch(indicator, covered)
        except SourceError as e:
            logger.warning("%s batch %s failed: %s", adapter.name, indicator.value, e)
            return {}

    async def resolve_batch(
        self,
        indicator: IndicatorKind,
        countries: Sequence[CountryIdentifier],
    ) -> BatchResult:
        return (await self.resolve_batch_with_sources(indicator, countries)).data

    async def resolve_batch_with_sources(
        self,
        indicator: IndicatorKind,
        countries: Sequence[CountryIdentifier],
    ) -> BatchResolution:
        wanted = {c.code for c in countries}
        sources: Dict[str, str] = {}

        primary = await self._batch_from(self.primary, indicator, countries)
        merged: BatchResult = {code: s for code, s in primary.items() if code in wanted}
        for code in merged:
            sources[code] = self.primary.source_label

        gap = [c for c in countries if c.code not in merged]
        if gap:
            secondary = await self._batch_from(self.secondary, indicator, gap)
            gap_codes = {c.code for c in gap}
            for code, s in secondary.items():
                if code in gap_codes:
                    merged[code] = s
                    sources[code] = self.secondary.source_label

        if not merged:
            raise NoDataAvailable(f"No {indicator.value} data available for any country")

        logger.info(
            "batch %s: %d/%d countries (%d primary, %d secondary)",
            indicator.value, len(merged), len(countries),
            sum(1 for v in sources.values() if v == self.primary.source_label),
            sum(1 for v in sources.values() if v == self.secondary.source_label),
        )
        return BatchResolution(merged, sources)


# -----------------------------------------------------------------------------
# Overlay cache (lives for one overlay session)
# -----------------------------------------------------------------------------

class OverlayCache:
    """Per-indicator BatchResult cache; no expiry, cleared when the overlay is switched off."""

    def __init__(self, resolver: IndicatorResolver):
        self._resolver = resolver
        self._entries: Dict[IndicatorKind, BatchResolution] = {}
        self._locks: Dict[IndicatorKind, asyncio.Lock] = {}
        self.active: Optional[IndicatorKind] = None

    def __contains__(self, indicator: IndicatorKind) -> bool:
        return indicator in self._entries

    async def get_overlay(
        self,
        indicator: IndicatorKind,
        countries: Sequence[CountryIdentifier],
    ) -> BatchResolution:
        lock = self._locks.setdefault(indicator, asyncio.Lock())
        # concurrent toggles of one indicator share a single batch resolution
        async with lock:
            entry = self._entries.get(indicator)
            if entry is None:
                entry = await self._resolver.resolve_batch_with_sources(indicator, countries)
                self._entries[indicator] = entry
        self.active = indicator
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()
        self.active = None


# -----------------------------------------------------------------------------
# Choropleth payload
# -----------------------------------------------------------------------------

def overlay_opacity(values: Mapping[str, float]) -> Dict[str, float]:
    """Linear scale of each value into [OPACITY_MIN, OPACITY_MAX] relative to the set."""
    if not values:
        return {}
    lo = min(values.values())
    hi = max(values.values())
    span = hi - lo
    out: Dict[str, float] = {}
    for code, v in values.items():
        norm = (v - lo) / span if span > 0 else 0.0
        out[code] = OPACITY_MIN + norm * (OPACITY_MAX - OPACITY_MIN)
    return out


def map_overlay_payload(
    indicator: IndicatorKind,
    batch: BatchResult,
    sources: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    spec = indicator_spec(indicator)
    latest = {code: s.latest for code, s in batch.items()}
    opacity = overlay_opacity(latest)
    sources = sources or {}
    return {
        "indicator": indicator.value,
        "label": spec["label"],
        "unit": spec["unit"],
        "state": "ready" if batch else "empty",
        "range": {"min": min(latest.values()), "max": max(latest.values())} if latest else None,
        "countries": {
            code: {
                "value": latest[code],
                "date": batch[code].latest_date.isoformat(),
                "opacity": round(opacity[code], 4),
                "source": sources.get(code),
            }
            for code in sorted(batch)
        },
    }
