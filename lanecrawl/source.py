"""Candidate discovery around a base location.

Catalog rows inside a band come first. When the catalog is sparse the
geocoder fills in, and each new place gets a market code from the
resolver before it can compete.
"""

import logging
import math
import re
from typing import Iterable, Optional

from lanecrawl.catalog import CityCatalog
from lanecrawl.distance import bounding_box, distance
from lanecrawl.geocoder import Geocoder, GeocoderError, Place
from lanecrawl.markets import MarketResolver
from lanecrawl.models import Candidate, City, DiscoverySource, DistanceBand

logger = logging.getLogger(__name__)

DEFAULT_SPARSE_THRESHOLD = 10

# Catalog placeholder rows such as "Columbus Metro" or "Zone 4"
_SYNTHETIC_NAME = re.compile(r"\b(metro|zone|region|area)\b", re.IGNORECASE)


def is_synthetic_name(name: str) -> bool:
    return bool(_SYNTHETIC_NAME.search(name))


class CandidateSource:
    """Fetches candidate cities for one side of a lane.

    One instance serves one side of one request: geocoder responses are
    memoized on it by (base, radius).
    """

    def __init__(
        self,
        catalog: CityCatalog,
        geocoder: Optional[Geocoder] = None,
        resolver: Optional[MarketResolver] = None,
        sparse_threshold: int = DEFAULT_SPARSE_THRESHOLD,
    ) -> None:
        self.catalog = catalog
        self.geocoder = geocoder
        self.resolver = resolver or MarketResolver(catalog)
        self.sparse_threshold = sparse_threshold
        self._provider_memo: dict[tuple[str, float], list[Place]] = {}

    def fetch_candidates(
        self,
        base: City,
        min_miles: float,
        max_miles: float,
        excluded_market_codes: Iterable[str] = (),
        allow_base_market: bool = False,
    ) -> list[Candidate]:
        """Return deduplicated candidates in (min_miles, max_miles] of base.

        Raises CatalogUnavailableError if the catalog cannot be read.
        Geocoder failures are logged and contribute nothing.
        """
        band = DistanceBand(min_miles=min_miles, max_miles=max_miles)
        excluded = {code.upper() for code in excluded_market_codes}
        base_market = (base.market_code or "").upper()
        if base_market and not allow_base_market:
            excluded.add(base_market)

        box = bounding_box(base.latitude, base.longitude, max_miles)
        rows = self.catalog.cities_in_box(
            box, exclude_market=None if allow_base_market else base.market_code
        )

        pool: dict[str, Candidate] = {}
        known_keys = {base.key}
        for city in rows:
            known_keys.add(city.key)
            if city.key == base.key or city.key in pool:
                continue
            if is_synthetic_name(city.name) or city.market_code in excluded:
                continue
            miles = distance(base.latitude, base.longitude, city.latitude, city.longitude)
            if math.isnan(miles) or not band.contains(miles):
                continue
            pool[city.key] = Candidate(city=city, distance=miles, band=band)

        logger.debug(
            "%s band %s: %d catalog candidates from %d rows", base.label, band.label, len(pool), len(rows)
        )

        if len(pool) < self.sparse_threshold and self.geocoder is not None:
            for cand in self._provider_candidates(base, band, excluded, known_keys):
                pool.setdefault(cand.key, cand)

        return list(pool.values())

    def _provider_candidates(
        self,
        base: City,
        band: DistanceBand,
        excluded: set[str],
        known_keys: set[str],
    ) -> list[Candidate]:
        places = self._places_near(base, band.max_miles)
        added = []
        for place in places:
            city = City(
                name=place.name,
                region=place.region,
                postal_code=place.postal_code,
                latitude=place.latitude,
                longitude=place.longitude,
                population=place.population,
            )
            if city.key in known_keys:
                continue
            miles = distance(base.latitude, base.longitude, city.latitude, city.longitude)
            if math.isnan(miles) or not band.contains(miles):
                continue
            city, synthesized = self.resolver.assign(city)
            if city.market_code in excluded:
                continue
            added.append(
                Candidate(
                    city=city,
                    distance=miles,
                    band=band,
                    source=DiscoverySource.GEOCODER,
                    market_synthesized=synthesized,
                )
            )
        if added:
            logger.info("Geocoder added %d candidates near %s in band %s", len(added), base.label, band.label)
        return added

    def _places_near(self, base: City, radius: float) -> list[Place]:
        memo_key = (base.key, radius)
        if memo_key in self._provider_memo:
            return self._provider_memo[memo_key]
        try:
            places = self.geocoder.places_near(base.latitude, base.longitude, radius)
        except GeocoderError as exc:
            logger.warning("Geocoder unavailable near %s (%s), using catalog only", base.label, exc)
            places = []
        self._provider_memo[memo_key] = places
        return places
