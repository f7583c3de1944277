from typing import Dict, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.providers.base import SOURCE_PRIMARY, SOURCE_SECONDARY, EmptyResult, SourceAdapter
from app.routes import country
from app.services.indicator_matrix import IndicatorKind
from app.services.indicator_service import IndicatorResolver, OverlayCache
from app.utils.country_codes import EUROPE_COUNTRIES, CountryIdentifier, eurostat_code, wb_code
from app.utils.series_math import Series, normalize_series

GDP_MEUR = normalize_series([("2022", 3_950_000), ("2023", 4_120_000)])
POP = normalize_series([("2023", 84_400_000)])
RATE = normalize_series([("2024-07", 3.4), ("2024-08", 3.5)])


class StaticAdapter(SourceAdapter):
    def __init__(self, name, label, translate, data: Dict[str, Dict[IndicatorKind, Series]]):
        super().__init__()
        self.name = name
        self.source_label = label
        self._translate = translate
        self._data = data
        self.batch_calls: List[IndicatorKind] = []

    def translate_country_code(self, c: CountryIdentifier) -> Optional[str]:
        return self._translate(c.code)

    async def fetch_series(self, indicator, c):
        self._require_code(c)
        try:
            return self._data[c.code][indicator]
        except KeyError:
            raise EmptyResult("none", source=self.name, country=c.code) from None

    async def fetch_batch(self, indicator, countries):
        self.batch_calls.append(indicator)
        return {
            c.code: self._data[c.code][indicator]
            for c in countries
            if indicator in self._data.get(c.code, {})
        }


def _profile(gdp=GDP_MEUR) -> Dict[IndicatorKind, Series]:
    return {
        IndicatorKind.GDP: gdp,
        IndicatorKind.POPULATION: POP,
        IndicatorKind.UNEMPLOYMENT: RATE,
        IndicatorKind.INFLATION: RATE,
    }


@pytest.fixture
def adapters():
    primary = StaticAdapter("Eurostat", SOURCE_PRIMARY, eurostat_code, {"DE": _profile()})
    secondary = StaticAdapter(
        "World Bank", SOURCE_SECONDARY, wb_code,
        {"UA": _profile(normalize_series([("2023", 165_000)]))},
    )
    return primary, secondary


@pytest.fixture
def client(adapters):
    app = FastAPI()
    app.include_router(country.router)
    resolver = IndicatorResolver(*adapters)
    app.state.resolver = resolver
    app.state.overlay_cache = OverlayCache(resolver)
    return TestClient(app)


def test_list_countries(client):
    r = client.get("/v1/countries")
    assert r.status_code == 200
    rows = r.json()["countries"]
    assert len(rows) == len(EUROPE_COUNTRIES)
    greece = next(row for row in rows if row["code"] == "GR")
    assert greece == {"code": "GR", "name": "Greece", "eurostat": "EL", "world_bank": "GRC"}


def test_profile_primary(client):
    r = client.get("/v1/country/Germany/profile")
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "ready"
    assert body["country"] == {"code": "DE", "name": "Germany"}
    assert body["data_source"] == "Eurostat"
    assert body["key_metrics"] == {
        "gdp": "€4T",
        "population": "84M",
        "unemployment": "3.50%",
        "inflation": "3.50%",
    }
    gdp = body["indicators"]["gdp"]
    assert gdp["latest"] == 4_120_000
    assert gdp["source"] == "Primary"
    assert [p["date"] for p in gdp["historical"]] == ["2022-01-01", "2023-01-01"]


def test_profile_secondary(client):
    body = client.get("/v1/country/UA/profile").json()
    assert body["data_source"] == "World Bank"
    assert {i["source"] for i in body["indicators"].values()} == {"Secondary"}


def test_profile_no_data_returns_error_state(client):
    r = client.get("/v1/country/VA/profile")
    assert r.status_code == 502
    body = r.json()
    assert body["state"] == "error"
    assert "Vatican City" in body["error"]


def test_unknown_country_and_indicator(client):
    assert client.get("/v1/country/Atlantis/profile").status_code == 404
    assert client.get("/v1/country/DE/indicator/wealth").status_code == 400


def test_single_indicator_with_alias(client):
    r = client.get("/v1/country/DE/indicator/cpi")
    assert r.status_code == 200
    body = r.json()
    assert body["indicator"] == "inflation"
    assert body["latest"] == 3.5
    assert body["provider"] == "Eurostat"


def test_overlay_cached_until_cleared(client, adapters):
    primary, secondary = adapters

    body = client.get("/v1/overlay/gdp").json()
    assert body["state"] == "ready"
    assert set(body["countries"]) == {"DE", "UA"}
    assert body["countries"]["DE"]["source"] == "Primary"
    assert body["countries"]["UA"]["source"] == "Secondary"
    assert body["countries"]["DE"]["opacity"] == 0.8

    client.get("/v1/overlay/gdp")
    assert primary.batch_calls == [IndicatorKind.GDP]
    assert secondary.batch_calls == [IndicatorKind.GDP]

    assert client.delete("/v1/overlay").json() == {"ok": True, "active": None}
    client.get("/v1/overlay/gdp")
    assert primary.batch_calls == [IndicatorKind.GDP, IndicatorKind.GDP]


def test_overlay_without_data_is_empty_not_error():
    empty = StaticAdapter("Eurostat", SOURCE_PRIMARY, eurostat_code, {})
    empty_wb = StaticAdapter("World Bank", SOURCE_SECONDARY, wb_code, {})
    app = FastAPI()
    app.include_router(country.router)
    resolver = IndicatorResolver(empty, empty_wb)
    app.state.resolver = resolver
    app.state.overlay_cache = OverlayCache(resolver)

    r = TestClient(app).get("/v1/overlay/population")
    assert r.status_code == 200
    assert r.json()["state"] == "empty"
    assert r.json()["countries"] == {}


def test_app_wiring_and_health():
    import httpx

    from app.main import app, build_resolver

    resolver = build_resolver(httpx.AsyncClient())
    assert resolver.primary.name == "Eurostat"
    assert resolver.secondary.name == "World Bank"
    assert resolver.primary.source_label == "Primary"
    assert resolver.secondary.source_label == "Secondary"

    assert TestClient(app).get("/healthz").json() == {"status": "ok"}
