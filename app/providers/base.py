# app/providers/base.py
from __future__ import annotations

"""
Shared provider contract for Euro Econ Map.

Every statistics source implements SourceAdapter and raises from the
SourceError family; nothing here retries or falls back, that is the
resolver's job (app.services.indicator_service).
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from app.services.indicator_matrix import IndicatorKind
from app.utils.country_codes import CountryIdentifier
from app.utils.series_math import Series

logger = logging.getLogger("euromap.providers")

USER_AGENT = os.getenv("EUROMAP_USER_AGENT", "euro-econ-map/1.0 (+providers)")

SOURCE_PRIMARY = "Primary"
SOURCE_SECONDARY = "Secondary"

BatchResult = Dict[str, Series]
Params = Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]


# ------------------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------------------
class SourceError(Exception):
    """Base for failures of a single source; recoverable by falling back."""

    def __init__(self, message: str, *, source: str = "", country: Optional[str] = None):
        super().__init__(message)
        self.source = source
        self.country = country


class NoCoverage(SourceError):
    """The country has no code in this source's dialect."""


class UpstreamError(SourceError):
    """Non-2xx status, transport failure or malformed payload."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kw: Any):
        super().__init__(message, **kw)
        self.status_code = status_code


class EmptyResult(SourceError):
    """Well-formed payload with no usable observations."""


class NoDataAvailable(Exception):
    """Both sources exhausted; `primary_error` is the preferred diagnostic."""

    def __init__(
        self,
        message: str,
        *,
        primary_error: Optional[BaseException] = None,
        secondary_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.primary_error = primary_error
        self.secondary_error = secondary_error


# ------------------------------------------------------------------------------
# HTTP helper
# ------------------------------------------------------------------------------
async def get_json(
    client: httpx.AsyncClient,
    url: str,
    params: Optional[Params] = None,
    *,
    source: str,
    timeout: Optional[float] = None,
) -> Any:
    """Single GET, no retries. Every failure becomes UpstreamError."""
    headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
    logger.debug("[%s] GET %s params=%s", source, url, params)
    try:
        r = await client.get(url, params=params, headers=headers, timeout=timeout)
        r.raise_for_status()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        logger.warning("[%s] HTTP %s for %s", source, status, url)
        raise UpstreamError(f"{source} returned HTTP {status}", status_code=status, source=source) from e
    except httpx.HTTPError as e:
        logger.warning("[%s] request failed %s: %r", source, url, e)
        raise UpstreamError(f"{source} request failed: {e.__class__.__name__}", source=source) from e

    try:
        return r.json()
    except ValueError as e:
        logger.warning("[%s] invalid JSON from %s", source, url)
        raise UpstreamError(f"{source} returned an unparseable payload", source=source) from e


def chunked(codes: Iterable[str], size: int) -> List[List[str]]:
    """Order-preserving, de-duplicated, disjoint chunks."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    seen: List[str] = []
    for c in codes:
        if c not in seen:
            seen.append(c)
    return [seen[i:i + size] for i in range(0, len(seen), size)]


# ------------------------------------------------------------------------------
# Adapter interface
# ------------------------------------------------------------------------------
class SourceAdapter(ABC):
    """One upstream statistics API translated to the canonical Series model."""

    name: str = "base"                 # display attribution, e.g. "Eurostat"
    source_label: str = SOURCE_PRIMARY
    chunk_size: int = 50

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._client = client
        self._timeout = timeout

    @abstractmethod
    def translate_country_code(self, country: CountryIdentifier) -> Optional[str]:
        """Source-specific code, or None when the source does not cover the country."""
        ...

    @abstractmethod
    async def fetch_series(self, indicator: IndicatorKind, country: CountryIdentifier) -> Series:
        ...

    @abstractmethod
    async def fetch_batch(
        self,
        indicator: IndicatorKind,
        countries: Sequence[CountryIdentifier],
    ) -> BatchResult:
        """Countries without data are omitted, never an error on their own."""
        ...

    def _require_code(self, country: CountryIdentifier) -> str:
        code = self.translate_country_code(country)
        if code is None:
            raise NoCoverage(
                f"{country.name} is not covered by {self.name}",
                source=self.name,
                country=country.code,
            )
        return code

    def _codes_for(self, countries: Sequence[CountryIdentifier]) -> Dict[str, List[CountryIdentifier]]:
        """source code -> requesting countries (uncovered ones dropped)."""
        out: Dict[str, List[CountryIdentifier]] = {}
        for c in countries:
            code = self.translate_country_code(c)
            if code is not None:
                out.setdefault(code, []).append(c)
        return out

    async def _get(self, url: str, params: Optional[Params] = None) -> Any:
        if self._client is not None:
            return await get_json(self._client, url, params, source=self.name, timeout=self._timeout)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await get_json(client, url, params, source=self.name, timeout=self._timeout)
