# app/routes/country.py — country profiles, single indicators and map overlays
from __future__ import annotations

from typing import Any, Dict
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from app.providers.base import NoDataAvailable
from app.services.indicator_matrix import IndicatorKind, parse_indicator
from app.services.indicator_service import IndicatorResolver, OverlayCache, map_overlay_payload
from app.utils.country_codes import EUROPE_COUNTRIES, CountryIdentifier, find_country, get_country_codes
from app.utils.series_math import format_gdp, format_percent, format_population

logger = logging.getLogger("euromap.routes")

router = APIRouter(prefix="/v1", tags=["country"])


# ----------------------------- dependencies ----------------------------------

def get_resolver(request: Request) -> IndicatorResolver:
    return request.app.state.resolver


def get_overlay_cache(request: Request) -> OverlayCache:
    return request.app.state.overlay_cache


def _country_or_404(country: str) -> CountryIdentifier:
    c = find_country(country)
    if c is None:
        raise HTTPException(status_code=404, detail=f"Unknown country: {country}")
    return c


def _indicator_or_400(indicator: str) -> IndicatorKind:
    try:
        return parse_indicator(indicator)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _error_state(message: str) -> JSONResponse:
    return JSONResponse(status_code=502, content={"error": message, "state": "error"})


def _key_metrics(indicators: Dict[IndicatorKind, Any]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    if IndicatorKind.GDP in indicators:
        out["gdp"] = format_gdp(indicators[IndicatorKind.GDP].series.latest)
    if IndicatorKind.POPULATION in indicators:
        out["population"] = format_population(indicators[IndicatorKind.POPULATION].series.latest)
    if IndicatorKind.UNEMPLOYMENT in indicators:
        out["unemployment"] = format_percent(indicators[IndicatorKind.UNEMPLOYMENT].series.latest)
    if IndicatorKind.INFLATION in indicators:
        out["inflation"] = format_percent(indicators[IndicatorKind.INFLATION].series.latest)
    return out


# ------------------------------- routes --------------------------------------

@router.get("/countries")
def list_countries() -> Dict[str, Any]:
    return {"countries": [get_country_codes(c.code) for c in EUROPE_COUNTRIES]}


@router.get("/country/{country}/profile")
async def country_profile(country: str, resolver: IndicatorResolver = Depends(get_resolver)):
    c = _country_or_404(country)
    try:
        profile = await resolver.resolve_profile(c)
    except NoDataAvailable as e:
        logger.warning("profile %s failed: %s", c.code, e)
        return _error_state(str(e))

    body = profile.to_dict()
    body["key_metrics"] = _key_metrics(profile.indicators)
    body["state"] = "ready"
    return body


@router.get("/country/{country}/indicator/{indicator}")
async def country_indicator(
    country: str,
    indicator: str,
    resolver: IndicatorResolver = Depends(get_resolver),
):
    c = _country_or_404(country)
    kind = _indicator_or_400(indicator)
    try:
        res = await resolver.resolve_with_source(kind, c)
    except NoDataAvailable as e:
        logger.warning("indicator %s/%s failed: %s", c.code, kind.value, e)
        return _error_state(str(e))
    return {"country": c.to_dict(), "indicator": kind.value, "state": "ready", **res.to_dict()}


@router.get("/overlay/{indicator}")
async def overlay(indicator: str, cache: OverlayCache = Depends(get_overlay_cache)):
    kind = _indicator_or_400(indicator)
    try:
        entry = await cache.get_overlay(kind, EUROPE_COUNTRIES)
    except NoDataAvailable as e:
        # no choropleth, but the rest of the map keeps working
        logger.warning("overlay %s unavailable: %s", kind.value, e)
        return map_overlay_payload(kind, {})
    return map_overlay_payload(kind, entry.data, entry.sources)


@router.delete("/overlay")
def clear_overlay(cache: OverlayCache = Depends(get_overlay_cache)) -> Dict[str, Any]:
    cache.clear()
    return {"ok": True, "active": None}
