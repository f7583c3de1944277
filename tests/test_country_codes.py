import pytest

from app.utils.country_codes import (
    EUROPE_COUNTRIES,
    EUROSTAT_EXCLUDED,
    WB_EXCLUDED,
    CountryIdentifier,
    eurostat_code,
    find_country,
    get_country_codes,
    wb_code,
)


def test_eurostat_special_codes():
    assert eurostat_code("GR") == "EL"
    assert eurostat_code("GB") == "UK"
    assert eurostat_code("DE") == "DE"
    assert eurostat_code("de") == "DE"


@pytest.mark.parametrize("code", sorted(EUROSTAT_EXCLUDED))
def test_eurostat_excluded_territories(code):
    assert eurostat_code(code) is None


def test_wb_iso3_codes():
    assert wb_code("GR") == "GRC"
    assert wb_code("EL") == "GRC"
    assert wb_code("GB") == "GBR"
    assert wb_code("UK") == "GBR"
    assert wb_code("XK") == "XKX"
    assert wb_code("ZZ") is None


@pytest.mark.parametrize("code", sorted(WB_EXCLUDED))
def test_wb_excluded_territories(code):
    assert wb_code(code) is None


def test_translation_is_pure_and_deterministic():
    for c in EUROPE_COUNTRIES:
        assert eurostat_code(c.code) == eurostat_code(c.code)
        assert wb_code(c.code) == wb_code(c.code)


def test_some_countries_are_secondary_only_and_some_uncovered():
    secondary_only = [c.code for c in EUROPE_COUNTRIES if eurostat_code(c.code) is None and wb_code(c.code)]
    uncovered = [c.code for c in EUROPE_COUNTRIES if eurostat_code(c.code) is None and wb_code(c.code) is None]
    assert "UA" in secondary_only
    assert "XK" in secondary_only
    assert set(uncovered) == {"CYN", "GG", "JE", "VA"}


def test_find_country_by_code_alias_and_name():
    assert find_country("DE") == CountryIdentifier("DE", "Germany")
    assert find_country("el").code == "GR"
    assert find_country("UK").code == "GB"
    assert find_country("Greece").code == "GR"
    assert find_country("czech republic").code == "CZ"
    assert find_country("Japan") is None
    assert find_country("Nowhereland") is None
    assert find_country("") is None


def test_get_country_codes_bundle():
    assert get_country_codes("Greece") == {
        "code": "GR",
        "name": "Greece",
        "eurostat": "EL",
        "world_bank": "GRC",
    }
    assert get_country_codes("Ukraine")["eurostat"] is None
    assert get_country_codes("Atlantis")["code"] is None
