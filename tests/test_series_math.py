import math
from datetime import date

import pytest

from app.utils.series_math import (
    EmptySeriesError,
    Series,
    TimePoint,
    apply_conversion,
    coerce_value,
    convert_series,
    eur_millions,
    format_gdp,
    format_population,
    normalize_series,
    parse_period,
    usd_to_eur_millions,
)


@pytest.mark.parametrize(
    "label,expected",
    [
        ("2023", date(2023, 1, 1)),
        ("2023-07", date(2023, 7, 1)),
        ("2023M07", date(2023, 7, 1)),
        ("2023-Q1", date(2023, 1, 1)),
        ("2023-Q3", date(2023, 7, 1)),
        ("2023-S2", date(2023, 7, 1)),
        ("2023-07-15", date(2023, 7, 15)),
        (2021, date(2021, 1, 1)),
    ],
)
def test_parse_period_labels(label, expected):
    assert parse_period(label) == expected


def test_parse_period_rejects_garbage():
    with pytest.raises(ValueError):
        parse_period("last year")
    with pytest.raises(ValueError):
        parse_period("2023-13")


def test_coerce_value_filters_invalid():
    assert coerce_value("4.5") == 4.5
    assert coerce_value(3) == 3.0
    for bad in (None, float("nan"), float("inf"), "n/a", True, {}):
        assert coerce_value(bad) is None


def test_normalize_sorts_drops_invalid_and_derives_latest():
    raw = [
        ("2022", 10.4),
        ("2019", None),
        ("2020", float("nan")),
        ("2021", 10.7),
        ("bogus", 1.0),
        ("2018", ":"),
    ]
    s = normalize_series(raw)
    assert [p.date for p in s.historical] == [date(2021, 1, 1), date(2022, 1, 1)]
    assert s.latest == 10.4
    assert s.latest == s.historical[-1].value
    assert all(not math.isnan(p.value) for p in s.historical)


def test_normalize_duplicate_dates_keep_last_value():
    s = normalize_series([("2021", 1.0), ("2021-01-01", 2.0), ("2020", 0.5)])
    assert len(s.historical) == 2
    assert s.latest == 2.0


def test_normalize_is_idempotent():
    s = normalize_series([("2020-03", 6.1), ("2020-01", 6.3), ("2020-02", 6.2)])
    again = normalize_series(s.pairs())
    assert again == s
    assert [p.date.month for p in again.historical] == [1, 2, 3]


def test_normalize_empty_raises():
    with pytest.raises(EmptySeriesError):
        normalize_series([("2020", None), ("2021", float("nan"))])
    with pytest.raises(EmptySeriesError):
        normalize_series([])


def test_series_rejects_unsorted_history():
    with pytest.raises(ValueError):
        Series((TimePoint(date(2022, 1, 1), 1.0), TimePoint(date(2021, 1, 1), 2.0)))
    with pytest.raises(ValueError):
        Series(())


def test_series_rejects_non_finite_values():
    for bad in (math.nan, math.inf, -math.inf):
        with pytest.raises(ValueError):
            Series((TimePoint(date(2021, 1, 1), 1.0), TimePoint(date(2022, 1, 1), bad)))

    base = normalize_series([("2021", 1.0), ("2022", 2.0)])
    with pytest.raises(ValueError):
        convert_series(base, lambda v: v * math.inf)


def test_series_to_dict_shape():
    s = normalize_series([("2021", 10_700_000), ("2022", 10_400_000)])
    assert s.to_dict() == {
        "latest": 10_400_000.0,
        "latest_date": "2022-01-01",
        "historical": [
            {"date": "2021-01-01", "value": 10_700_000.0},
            {"date": "2022-01-01", "value": 10_400_000.0},
        ],
    }


def test_gdp_rules_agree_for_equal_underlying_amounts():
    rate = 0.92
    eur_meur = 4_120_000.0                       # as published by Eurostat (CP_MEUR)
    usd_abs = eur_meur * 1_000_000 / rate        # same amount, absolute USD (World Bank)
    assert usd_to_eur_millions(usd_abs, rate=rate) == pytest.approx(eur_millions(eur_meur))


def test_apply_conversion_maps_every_point():
    s = normalize_series([("2021", 2_000_000_000.0), ("2022", 3_000_000_000.0)])
    out = apply_conversion(s, "usd_to_eur_millions")
    assert [p.value for p in out.historical] == pytest.approx([1840.0, 2760.0])
    assert out.latest == out.historical[-1].value
    assert apply_conversion(s, "none") is s
    with pytest.raises(KeyError):
        apply_conversion(s, "gbp")


def test_display_formatting():
    assert format_gdp(4_120_000) == "€4T"
    assert format_gdp(215_000) == "€215B"
    assert format_population(83_200_000) == "83M"
    assert format_population(1_400_000_000) == "1B"
