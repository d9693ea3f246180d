"""Market code resolution for cities that arrive without one.

Geocoder places and some catalog bases carry no market code. A code is
borrowed from the catalog when possible and synthesized as a last resort.
"""

import logging
import math
import re
from typing import NamedTuple, Optional

from lanecrawl.catalog import CityCatalog
from lanecrawl.distance import bounding_box, distance
from lanecrawl.models import City

logger = logging.getLogger(__name__)

REFERENCE_RADIUS_MILES = 100.0

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


class MarketAssignment(NamedTuple):
    code: str
    name: Optional[str]
    synthesized: bool
    method: str  # "catalog", "nearest" or "synthesized"


def reference_score(miles: float, population: int) -> float:
    """Preference for a reference city: close and populous wins."""
    return 1.0 / (1.0 + 0.1 * miles) + 0.1 * math.log10(max(population, 1))


def synthesize_code(name: str, region: str) -> str:
    """Build a placeholder code like ``OH_MARY`` from region and name."""
    frag = _NON_ALNUM.sub("", name.upper())[:4] or "X"
    return f"{region.strip().upper()}_{frag}"


class MarketResolver:
    """Assigns market codes, memoized per instance."""

    def __init__(self, catalog: CityCatalog, reference_radius: float = REFERENCE_RADIUS_MILES) -> None:
        self.catalog = catalog
        self.reference_radius = reference_radius
        self._memo: dict[str, MarketAssignment] = {}

    def resolve(self, city: City) -> MarketAssignment:
        if city.key in self._memo:
            return self._memo[city.key]
        assignment = self._resolve(city)
        self._memo[city.key] = assignment
        if assignment.synthesized:
            logger.warning(
                "No market reference within %g mi of %s, using placeholder %s",
                self.reference_radius,
                city.label,
                assignment.code,
            )
        return assignment

    def _resolve(self, city: City) -> MarketAssignment:
        if city.market_code:
            return MarketAssignment(city.market_code, city.market_name, False, "catalog")

        match = self.catalog.find_city(city.name, city.region)
        if match is not None and match.market_code:
            return MarketAssignment(match.market_code, match.market_name, False, "catalog")

        nearest = self._nearest_reference(city)
        if nearest is not None:
            return MarketAssignment(nearest.market_code, nearest.market_name, False, "nearest")

        return MarketAssignment(synthesize_code(city.name, city.region), None, True, "synthesized")

    def _nearest_reference(self, city: City) -> Optional[City]:
        box = bounding_box(city.latitude, city.longitude, self.reference_radius)
        best = None
        best_rank = None
        for ref in self.catalog.cities_in_box(box):
            if ref.key == city.key or not ref.market_code:
                continue
            miles = distance(city.latitude, city.longitude, ref.latitude, ref.longitude)
            if math.isnan(miles) or miles > self.reference_radius:
                continue
            rank = (-reference_score(miles, ref.population), miles, ref.key)
            if best_rank is None or rank < best_rank:
                best, best_rank = ref, rank
        return best

    def assign(self, city: City) -> tuple[City, bool]:
        """Return city with a market code filled in, and whether it is synthesized."""
        if city.market_code:
            return city, False
        assignment = self.resolve(city)
        updated = city.model_copy(update={"market_code": assignment.code, "market_name": assignment.name})
        return updated, assignment.synthesized
