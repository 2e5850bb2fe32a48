"""
Geocoding Module

Turns free-text neighborhood descriptions into coordinates with the Google
Geocoding API.

Components:
1. Pydantic models validating the API's JSON payload
2. GoogleGeocoder: thin `requests` client, one HTTP call per fetch
3. CachedGeocoder: in-memory memoization keyed on the address string
4. geocode_neighborhoods: batch enrichment of the neighborhood table

Failure policy: any problem with one address (network error, non-OK status,
no match, ambiguous match, malformed payload) becomes an error GeocodeResult
for that address. The batch never aborts; callers drop unresolved rows.
"""

import logging
from collections import namedtuple
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from geohousing import config

logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_ZERO_RESULTS = "ZERO_RESULTS"
STATUS_AMBIGUOUS = "AMBIGUOUS"
STATUS_ERROR = "ERROR"
STATUS_EXCLUDED = "EXCLUDED"


class GeocodingError(Exception):
    """Raised by the HTTP client when a request or its payload is unusable."""


# ==================== API PAYLOAD MODELS ====================

class LatLng(BaseModel):
    """Geographic point in WGS84 degrees"""
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @field_validator('lat')
    @classmethod
    def validate_lat(cls, v):
        if not -90.0 <= v <= 90.0:
            raise ValueError(f'latitude out of range: {v}')
        return v

    @field_validator('lng')
    @classmethod
    def validate_lng(cls, v):
        if not -180.0 <= v <= 180.0:
            raise ValueError(f'longitude out of range: {v}')
        return v


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    northeast: LatLng
    southwest: LatLng

    @property
    def center(self) -> LatLng:
        return LatLng(
            lat=(self.northeast.lat + self.southwest.lat) / 2,
            lng=(self.northeast.lng + self.southwest.lng) / 2,
        )


class Geometry(BaseModel):
    location: Optional[LatLng] = None
    location_type: Optional[str] = None
    bounds: Optional[BoundingBox] = None
    viewport: Optional[BoundingBox] = None


class Candidate(BaseModel):
    """One entry of the API's `results` array"""
    formatted_address: str = ""
    geometry: Geometry
    partial_match: bool = False
    types: List[str] = Field(default_factory=list)


class GeocodeResponse(BaseModel):
    """Top-level API payload. Unknown fields are ignored."""
    status: str
    results: List[Candidate] = Field(default_factory=list)
    error_message: Optional[str] = None


# ==================== RESULT ====================

class GeocodeResult(BaseModel):
    """
    Outcome of geocoding one address.

    `status` is OK for a usable single match. Anything else is an error result
    whose `error` explains why; such results carry no coordinates.
    """
    model_config = ConfigDict(frozen=True)

    address: str
    status: str
    point: Optional[LatLng] = None
    bounds: Optional[BoundingBox] = None
    formatted_address: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK and (self.point is not None or self.bounds is not None)

    @property
    def centroid(self) -> Optional[LatLng]:
        """Point location, or the centre of the bounding box when no point was returned."""
        if self.point is not None:
            return self.point
        if self.bounds is not None:
            return self.bounds.center
        return None


def interpret_response(address: str, response: GeocodeResponse) -> GeocodeResult:
    """
    Reduce an API payload to a GeocodeResult.

    Only a single candidate is accepted; several candidates mean the search
    string did not identify one place and the address is treated as ambiguous.
    """
    if response.status != STATUS_OK:
        if response.status == STATUS_ZERO_RESULTS:
            error = "no match"
        else:
            error = response.error_message or f"API status {response.status}"
        return GeocodeResult(address=address, status=response.status, error=error)

    if not response.results:
        return GeocodeResult(address=address, status=STATUS_ZERO_RESULTS, error="no match")

    if len(response.results) > 1:
        matches = "; ".join(c.formatted_address for c in response.results)
        return GeocodeResult(
            address=address,
            status=STATUS_AMBIGUOUS,
            error=f"{len(response.results)} candidates: {matches}",
        )

    candidate = response.results[0]
    geometry = candidate.geometry
    bounds = geometry.bounds or geometry.viewport
    if geometry.location is None and bounds is None:
        return GeocodeResult(address=address, status=STATUS_ERROR, error="result has no geometry")

    return GeocodeResult(
        address=address,
        status=STATUS_OK,
        point=geometry.location,
        bounds=bounds,
        formatted_address=candidate.formatted_address,
    )


# ==================== HTTP CLIENT ====================

class GoogleGeocoder:
    """Google Geocoding API client. Every call to `fetch` is one HTTP request."""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        url: str = config.GEOCODE_URL,
        timeout: float = config.REQUEST_TIMEOUT_SECONDS
    ):
        self.api_key = api_key
        self.session = session if session is not None else requests.Session()
        self.url = url
        self.timeout = timeout

    @classmethod
    def from_environment(cls, **kwargs) -> "GoogleGeocoder":
        return cls(api_key=config.get_api_key(), **kwargs)

    def fetch(self, address: str) -> GeocodeResponse:
        """
        Request and validate the payload for one address.

        Raises:
            GeocodingError: On network/HTTP errors or a malformed payload
        """
        params = {"address": address, "key": self.api_key}
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise GeocodingError(f"request failed: {exc}") from exc

        try:
            return GeocodeResponse.model_validate(payload)
        except ValidationError as exc:
            raise GeocodingError(f"malformed payload: {exc}") from exc


# ==================== CACHE ====================

CacheInfo = namedtuple('CacheInfo', ['hits', 'misses', 'currsize'])


class CachedGeocoder:
    """
    Memoizing wrapper around a geocoding client.

    The cache is a plain dict from address string to GeocodeResult, populated
    lazily and never evicted: its lifetime is the lifetime of this object.
    Error results are cached too, so a failing address is requested once.
    """

    def __init__(self, client):
        self.client = client
        self._cache: Dict[str, GeocodeResult] = {}
        self._hits = 0
        self._misses = 0

    def lookup(self, address: str) -> GeocodeResult:
        if address in self._cache:
            self._hits += 1
            return self._cache[address]

        self._misses += 1
        logger.debug("Cache miss, requesting '%s'", address)
        try:
            result = interpret_response(address, self.client.fetch(address))
        except GeocodingError as exc:
            result = GeocodeResult(address=address, status=STATUS_ERROR, error=str(exc))

        if not result.ok:
            logger.warning("Geocoding '%s' failed (%s): %s", address, result.status, result.error)

        self._cache[address] = result
        return result

    def cache_info(self) -> CacheInfo:
        return CacheInfo(self._hits, self._misses, len(self._cache))

    def __contains__(self, address: str) -> bool:
        return address in self._cache

    def __len__(self) -> int:
        return len(self._cache)


# ==================== BATCH ====================

def _coordinates(result: GeocodeResult) -> Tuple[float, float]:
    centroid = result.centroid
    if not result.ok or centroid is None:
        return np.nan, np.nan
    return centroid.lat, centroid.lng


def geocode_neighborhoods(
    neighborhoods: pd.DataFrame,
    geocoder: CachedGeocoder,
    verbose: bool = True
) -> pd.DataFrame:
    """
    Geocode every non-excluded neighborhood's search string.

    Args:
        neighborhoods: Output of data_loader.load_neighborhood_lookup
        geocoder: Memoizing geocoder shared across calls
        verbose: Print one progress line per neighborhood

    Returns:
        Copy of `neighborhoods` with geocode_status, formatted_address,
        geocode_error, latitude and longitude columns. Unresolved and
        excluded rows have NaN coordinates.
    """
    df = neighborhoods.copy()
    statuses, addresses, errors, lats, lngs = [], [], [], [], []

    total = len(df)
    for i, row in enumerate(df.itertuples(index=False), 1):
        if row.excluded:
            statuses.append(STATUS_EXCLUDED)
            addresses.append(None)
            errors.append("excluded")
            lats.append(np.nan)
            lngs.append(np.nan)
            if verbose:
                print(f"[{i}/{total}] {row.abbreviation}: excluded")
            continue

        result = geocoder.lookup(row.search_string)
        lat, lng = _coordinates(result)
        statuses.append(result.status)
        addresses.append(result.formatted_address)
        errors.append(result.error)
        lats.append(lat)
        lngs.append(lng)

        if verbose:
            if result.ok:
                print(f"[{i}/{total}] {row.abbreviation}: ✓ {result.formatted_address} ({lat:.5f}, {lng:.5f})")
            else:
                print(f"[{i}/{total}] {row.abbreviation}: ✗ {result.status} - {result.error}")

    df['geocode_status'] = statuses
    df['formatted_address'] = addresses
    df['geocode_error'] = errors
    df['latitude'] = lats
    df['longitude'] = lngs

    if verbose:
        info = geocoder.cache_info()
        resolved = int((df['geocode_status'] == STATUS_OK).sum())
        print(f"\nResolved {resolved}/{total} neighborhoods "
              f"(cache: {info.misses} requests, {info.hits} hits)")

    return df
