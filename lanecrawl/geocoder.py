"""Fallback city discovery via the HERE Browse API.

Used only when the catalog is sparse around a base location. Requires a
HERE API key (HERE_API_KEY or the system keyring); without one the
geocoder reports itself unavailable and finds nothing.
"""

import logging
import threading
import time
from typing import Optional, Protocol

import requests
from pydantic import BaseModel, Field, ValidationError

from lanecrawl.cache import ResponseCache, cache_key

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_HERE_BROWSE_URL = "https://browse.search.hereapi.com/v1/browse"
_METERS_PER_MILE = 1609.344
_RATE_LIMIT_SECONDS = 0.2
_COUNTRIES = frozenset({"USA", "CAN"})

# Logical category -> HERE place category
_CATEGORY_MAP = {
    "city": "city-town-village",
}

_rate_lock = threading.Lock()
_last_call_time = 0.0

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GeocoderError(Exception):
    """Base exception for geocoding provider failures."""


class GeocoderAuthError(GeocoderError):
    """HTTP 401: invalid or missing API key."""


class GeocoderQuotaError(GeocoderError):
    """HTTP 429: request quota exceeded."""


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class Place(BaseModel):
    """A populated place returned by the provider."""

    name: str = Field(min_length=1)
    region: str = Field(min_length=2, max_length=3)
    postal_code: Optional[str] = None
    latitude: float
    longitude: float
    distance_miles: Optional[float] = None
    population: int = 0


class Geocoder(Protocol):
    def places_near(
        self, lat: float, lon: float, radius_miles: float, category: str = "city"
    ) -> list[Place]:
        ...


def _rate_limit() -> None:
    """Enforce minimum delay between provider calls."""
    global _last_call_time
    with _rate_lock:
        elapsed = time.time() - _last_call_time
        if elapsed < _RATE_LIMIT_SECONDS:
            time.sleep(_RATE_LIMIT_SECONDS - elapsed)
        _last_call_time = time.time()


# ---------------------------------------------------------------------------
# HERE client
# ---------------------------------------------------------------------------


class HereGeocoder:
    """Radius-bounded city search against HERE, with a response cache."""

    def __init__(
        self,
        api_key: Optional[str],
        cache: Optional[ResponseCache] = None,
        timeout_s: float = 10.0,
        limit: int = 100,
    ) -> None:
        self._api_key = (api_key or "").strip()
        self.cache = cache
        self.timeout_s = timeout_s
        self.limit = limit

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    def places_near(
        self, lat: float, lon: float, radius_miles: float, category: str = "city"
    ) -> list[Place]:
        """Return places within radius_miles of (lat, lon).

        Raises GeocoderAuthError on 401, GeocoderQuotaError on 429 and
        GeocoderError for any other transport or response failure.
        """
        if not self.available:
            logger.debug("No HERE API key, skipping geocoder lookup")
            return []

        key = cache_key("browse", category, lat, lon, float(radius_miles), self.limit)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None and _well_formed(cached):
                logger.debug("Geocoder cache hit for %.4f,%.4f r=%g", lat, lon, radius_miles)
                return _parse_items(cached)

        data = self._browse(lat, lon, radius_miles, category)
        items = data.get("items", [])
        if not _well_formed(items):
            raise GeocoderError("HERE returned malformed items")
        if self.cache is not None:
            try:
                self.cache.put(key, items)
            except OSError as exc:
                logger.warning("Could not write geocoder cache: %s", exc)
        places = _parse_items(items)
        logger.info(
            "HERE returned %d places within %g mi of %.4f,%.4f", len(places), radius_miles, lat, lon
        )
        return places

    def _browse(self, lat: float, lon: float, radius_miles: float, category: str) -> dict:
        radius_m = int(round(radius_miles * _METERS_PER_MILE))
        params = {
            "apiKey": self._api_key,
            "at": f"{lat},{lon}",
            "in": f"circle:{lat},{lon};r={radius_m}",
            "categories": _CATEGORY_MAP.get(category, category),
            "limit": self.limit,
            "lang": "en-US",
        }

        _rate_limit()
        try:
            resp = requests.get(_HERE_BROWSE_URL, params=params, timeout=self.timeout_s)
        except requests.Timeout as exc:
            raise GeocoderError(f"HERE timeout after {self.timeout_s:g}s") from exc
        except requests.RequestException as exc:
            raise GeocoderError(f"HERE network error: {exc}") from exc

        if resp.status_code == 401:
            raise GeocoderAuthError("Invalid or missing HERE API key")
        if resp.status_code == 429:
            raise GeocoderQuotaError("HERE request quota exceeded")
        if resp.status_code >= 400:
            raise GeocoderError(f"HERE HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise GeocoderError("HERE returned non-JSON response") from exc
        if not isinstance(data, dict):
            raise GeocoderError("HERE returned an unexpected payload")
        return data


def _well_formed(items) -> bool:
    return isinstance(items, list) and all(isinstance(item, dict) for item in items)


def _parse_items(items: list) -> list[Place]:
    """Convert HERE browse items to Places, keeping US/Canadian cities only.

    Items are deduplicated by name+region, keeping the first occurrence.
    """
    places: list[Place] = []
    seen: set[tuple[str, str]] = set()
    for item in items:
        address = item.get("address") or {}
        position = item.get("position") or {}
        name = address.get("city")
        region = address.get("stateCode")
        if not name or not region or address.get("countryCode") not in _COUNTRIES:
            continue
        dedup = (name.strip().lower(), region.strip().lower())
        if dedup in seen:
            continue

        distance_m = item.get("distance")
        try:
            place = Place(
                name=name.strip(),
                region=region.strip().upper(),
                postal_code=address.get("postalCode"),
                latitude=position["lat"],
                longitude=position["lng"],
                distance_miles=(distance_m / _METERS_PER_MILE) if distance_m is not None else None,
                population=item.get("population") or 0,
            )
        except (KeyError, TypeError, ValidationError) as exc:
            logger.debug("Skipping malformed HERE item %r: %s", item.get("title"), exc)
            continue
        seen.add(dedup)
        places.append(place)
    return places
