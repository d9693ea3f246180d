"""Great-circle distance and bounding boxes for catalog pre-filtering."""

import math
from typing import NamedTuple

from haversine import haversine, Unit

# Coarse conversion used for bounding boxes only
_MILES_PER_DEGREE = 69.0


class BoundingBox(NamedTuple):
    """Latitude/longitude rectangle used as a catalog pre-filter."""

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance in miles between two coordinates.

    NaN in any coordinate yields NaN; callers filter those out.
    """
    if any(math.isnan(v) for v in (lat1, lon1, lat2, lon2)):
        return math.nan
    return haversine((lat1, lon1), (lat2, lon2), unit=Unit.MILES)


def bounding_box(lat: float, lon: float, radius_miles: float) -> BoundingBox:
    """Convert a radius around a point into a lat/lon rectangle.

    The longitude delta is widened by 1/cos(latitude). Bounding boxes
    over-include corners, so the exact distance cut must be re-applied
    to whatever the box returns.
    """
    lat_delta = radius_miles / _MILES_PER_DEGREE
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        min_lon, max_lon = -180.0, 180.0
    else:
        lon_delta = radius_miles / (_MILES_PER_DEGREE * cos_lat)
        if lon_delta >= 180.0:
            min_lon, max_lon = -180.0, 180.0
        else:
            min_lon, max_lon = lon - lon_delta, lon + lon_delta

    return BoundingBox(
        min_lat=max(-90.0, lat - lat_delta),
        max_lat=min(90.0, lat + lat_delta),
        min_lon=min_lon,
        max_lon=max_lon,
    )
