from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional
import re

import pycountry

# The map's geographic dataset identifies countries by ISO 3166-1 alpha-2.
# Territories without an ISO code carry the dataset's own id (Northern Cyprus: "CYN").


@dataclass(frozen=True)
class CountryIdentifier:
    code: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "name": self.name}


_MAP_COUNTRIES: Dict[str, str] = {
    "AL": "Albania",
    "AD": "Andorra",
    "AT": "Austria",
    "BY": "Belarus",
    "BE": "Belgium",
    "BA": "Bosnia and Herzegovina",
    "BG": "Bulgaria",
    "HR": "Croatia",
    "CY": "Cyprus",
    "CYN": "Northern Cyprus",
    "CZ": "Czechia",
    "DK": "Denmark",
    "EE": "Estonia",
    "FO": "Faroe Islands",
    "FI": "Finland",
    "FR": "France",
    "DE": "Germany",
    "GI": "Gibraltar",
    "GR": "Greece",
    "GG": "Guernsey",
    "HU": "Hungary",
    "IS": "Iceland",
    "IE": "Ireland",
    "IM": "Isle of Man",
    "IT": "Italy",
    "JE": "Jersey",
    "XK": "Kosovo",
    "LV": "Latvia",
    "LI": "Liechtenstein",
    "LT": "Lithuania",
    "LU": "Luxembourg",
    "MT": "Malta",
    "MD": "Moldova",
    "MC": "Monaco",
    "ME": "Montenegro",
    "NL": "Netherlands",
    "MK": "North Macedonia",
    "NO": "Norway",
    "PL": "Poland",
    "PT": "Portugal",
    "RO": "Romania",
    "RU": "Russia",
    "SM": "San Marino",
    "RS": "Serbia",
    "SK": "Slovakia",
    "SI": "Slovenia",
    "ES": "Spain",
    "SE": "Sweden",
    "CH": "Switzerland",
    "TR": "Turkey",
    "UA": "Ukraine",
    "GB": "United Kingdom",
    "VA": "Vatican City",
}

EUROPE_COUNTRIES: List[CountryIdentifier] = [
    CountryIdentifier(code, name) for code, name in _MAP_COUNTRIES.items()
]
_BY_CODE: Dict[str, CountryIdentifier] = {c.code: c for c in EUROPE_COUNTRIES}

# ------------------------------------------------------------------------------
# Eurostat dialect: ISO2, except Greece (EL) and the United Kingdom (UK)
# ------------------------------------------------------------------------------
EUROSTAT_SPECIAL: Dict[str, str] = {
    "GR": "EL",
    "GB": "UK",
}

# Not published by Eurostat (micro-states, dependencies, non-reporting states)
EUROSTAT_EXCLUDED: FrozenSet[str] = frozenset({
    "AD", "BY", "CYN", "FO", "GG", "GI", "IM", "JE",
    "MC", "MD", "RU", "SM", "UA", "VA", "XK",
})

# ------------------------------------------------------------------------------
# World Bank dialect: ISO3
# ------------------------------------------------------------------------------
WB_ISO3: Dict[str, str] = {
    "AL": "ALB", "AD": "AND", "AT": "AUT", "BY": "BLR", "BE": "BEL",
    "BA": "BIH", "BG": "BGR", "HR": "HRV", "CY": "CYP", "CZ": "CZE",
    "DK": "DNK", "EE": "EST", "FO": "FRO", "FI": "FIN", "FR": "FRA",
    "DE": "DEU", "GI": "GIB", "GR": "GRC", "HU": "HUN", "IS": "ISL",
    "IE": "IRL", "IM": "IMN", "IT": "ITA", "XK": "XKX", "LV": "LVA",
    "LI": "LIE", "LT": "LTU", "LU": "LUX", "MT": "MLT", "MD": "MDA",
    "MC": "MCO", "ME": "MNE", "NL": "NLD", "MK": "MKD", "NO": "NOR",
    "PL": "POL", "PT": "PRT", "RO": "ROU", "RU": "RUS", "SM": "SMR",
    "RS": "SRB", "SK": "SVK", "SI": "SVN", "ES": "ESP", "SE": "SWE",
    "CH": "CHE", "TR": "TUR", "UA": "UKR", "GB": "GBR",
    # Eurostat spellings seen on input
    "EL": "GRC", "UK": "GBR",
}

# World Bank reports the Channel Islands as one aggregate and skips the rest
WB_EXCLUDED: FrozenSet[str] = frozenset({"CYN", "GG", "JE", "VA"})


def eurostat_code(code: str) -> Optional[str]:
    c = (code or "").strip().upper()
    if not c or c in EUROSTAT_EXCLUDED:
        return None
    if c in EUROSTAT_SPECIAL:
        return EUROSTAT_SPECIAL[c]
    if c in ("EL", "UK"):
        return c
    if c in _BY_CODE and len(c) == 2:
        return c
    return None


def wb_code(code: str) -> Optional[str]:
    c = (code or "").strip().upper()
    if not c or c in WB_EXCLUDED:
        return None
    return WB_ISO3.get(c)


# ------------------------------------------------------------------------------
# Lookup by code or free-text name
# ------------------------------------------------------------------------------
_ALIASES: Dict[str, str] = {
    "uk": "GB",
    "el": "GR",
    "great britain": "GB",
    "britain": "GB",
    "holland": "NL",
    "czech republic": "CZ",
    "macedonia": "MK",
    "turkiye": "TR",
    "türkiye": "TR",
    "russian federation": "RU",
    "moldova, republic of": "MD",
    "holy see": "VA",
    "vatican": "VA",
    "trnc": "CYN",
}


def _norm(text: str) -> str:
    t = re.sub(r"[\u200b\s]+", " ", (text or "")).strip().lower()
    return t.replace(".", "").replace("’", "'")


def find_country(query: str) -> Optional[CountryIdentifier]:
    """
    Resolve a map code, alias or country name to a map CountryIdentifier.
    Returns None when the country is not on the map.
    """
    if not query:
        return None

    upper = query.strip().upper()
    if upper in _BY_CODE:
        return _BY_CODE[upper]

    key = _norm(query)
    if key in _ALIASES:
        return _BY_CODE[_ALIASES[key]]
    for c in EUROPE_COUNTRIES:
        if _norm(c.name) == key:
            return c

    try:
        m = pycountry.countries.lookup(query)
    except LookupError:
        return None
    return _BY_CODE.get(getattr(m, "alpha_2", ""))


def get_country_codes(query: str) -> Dict[str, Optional[str]]:
    """Per-source codes for a country; None where a source has no coverage."""
    c = find_country(query)
    if c is None:
        return {"code": None, "name": query, "eurostat": None, "world_bank": None}
    return {
        "code": c.code,
        "name": c.name,
        "eurostat": eurostat_code(c.code),
        "world_bank": wb_code(c.code),
    }
