"""
app/services/indicator_matrix.py

Declarative source matrix for the four map indicators.

This module does not call any APIs. For each IndicatorKind it lists the
Eurostat dataset + fixed filters (single-country and batch variants), the
World Bank indicator code, and the unit conversion applied after fetching
so every provider lands on the same canonical unit.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, TypedDict


class IndicatorKind(str, Enum):
    GDP = "gdp"
    UNEMPLOYMENT = "unemployment"
    INFLATION = "inflation"
    POPULATION = "population"


class EurostatSpec(TypedDict, total=False):
    dataset: str                # single-country dataset, e.g. "nama_10_gdp"
    filters: Dict[str, str]     # pins every non-geo, non-time dimension
    batch_dataset: str          # aggregate dataset for the overlay
    batch_filters: Dict[str, str]
    batch_unit: Optional[str]   # unit code to keep when the batch ships several
    conversion: str


class WorldBankSpec(TypedDict, total=False):
    indicator: str
    conversion: str


class IndicatorSpec(TypedDict, total=False):
    key: str
    label: str
    unit: str
    eurostat: EurostatSpec
    world_bank: WorldBankSpec


INDICATOR_MATRIX: Dict[IndicatorKind, IndicatorSpec] = {

    IndicatorKind.GDP: {
        "key": "gdp",
        "label": "GDP",
        "unit": "EUR million",
        "eurostat": {
            "dataset": "nama_10_gdp",
            "filters": {"na_item": "B1GQ", "unit": "CP_MEUR"},
            "batch_dataset": "nama_10_gdp",
            "batch_filters": {"na_item": "B1GQ", "unit": "CP_MEUR"},
            "batch_unit": "CP_MEUR",
            "conversion": "eur_millions",
        },
        "world_bank": {
            "indicator": "NY.GDP.MKTP.CD",   # current USD, absolute
            "conversion": "usd_to_eur_millions",
        },
    },

    IndicatorKind.UNEMPLOYMENT: {
        "key": "unemployment",
        "label": "Unemployment rate",
        "unit": "percent",
        "eurostat": {
            "dataset": "une_rt_m",
            "filters": {"age": "TOTAL", "sex": "T", "unit": "PC_ACT", "s_adj": "SA"},
            "batch_dataset": "une_rt_m",
            "batch_filters": {"age": "TOTAL", "sex": "T", "unit": "PC_ACT", "s_adj": "SA"},
            "batch_unit": "PC_ACT",
            "conversion": "none",
        },
        "world_bank": {
            "indicator": "SL.UEM.TOTL.ZS",
            "conversion": "none",
        },
    },

    IndicatorKind.INFLATION: {
        "key": "inflation",
        "label": "Inflation (HICP, annual rate)",
        "unit": "percent",
        "eurostat": {
            "dataset": "prc_hicp_manr",
            "filters": {"coicop": "CP00", "unit": "RCH_A"},
            "batch_dataset": "tec00118",
            "batch_filters": {"coicop": "CP00", "unit": "RCH_A_AVG"},
            "batch_unit": "RCH_A_AVG",
            "conversion": "none",
        },
        "world_bank": {
            "indicator": "FP.CPI.TOTL.ZG",
            "conversion": "none",
        },
    },

    IndicatorKind.POPULATION: {
        "key": "population",
        "label": "Population",
        "unit": "persons",
        "eurostat": {
            "dataset": "demo_pjan",
            "filters": {"sex": "T", "age": "TOTAL", "unit": "NR"},
            "batch_dataset": "tps00001",
            "batch_filters": {"indic_de": "JAN"},
            "batch_unit": None,
            "conversion": "none",
        },
        "world_bank": {
            "indicator": "SP.POP.TOTL",
            "conversion": "none",
        },
    },
}


_ALIASES: Dict[str, IndicatorKind] = {
    "gdp": IndicatorKind.GDP,
    "nominal_gdp": IndicatorKind.GDP,
    "unemployment": IndicatorKind.UNEMPLOYMENT,
    "unemployment_rate": IndicatorKind.UNEMPLOYMENT,
    "inflation": IndicatorKind.INFLATION,
    "cpi": IndicatorKind.INFLATION,
    "hicp": IndicatorKind.INFLATION,
    "population": IndicatorKind.POPULATION,
    "pop": IndicatorKind.POPULATION,
}


def parse_indicator(text: str) -> IndicatorKind:
    if isinstance(text, IndicatorKind):
        return text
    key = (text or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return _ALIASES[key]
    except KeyError:
        raise ValueError(f"unknown indicator: {text!r}") from None


def indicator_spec(kind: IndicatorKind) -> IndicatorSpec:
    return INDICATOR_MATRIX[kind]
