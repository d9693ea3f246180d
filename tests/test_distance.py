"""Tests for lanecrawl.distance module."""

import math

import hypothesis.strategies as st
import pytest
from hypothesis import given, settings

from lanecrawl.distance import BoundingBox, bounding_box, distance
_EARTH_RADIUS_MI = 3958.7613


def _destination(lat, lon, bearing_deg, miles):
    """Point reached from (lat, lon) travelling `miles` on a great circle."""
    phi1 = math.radians(lat)
    lam1 = math.radians(lon)
    theta = math.radians(bearing_deg)
    delta = miles / _EARTH_RADIUS_MI
    phi2 = math.asin(
        math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    lam2 = lam1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return math.degrees(phi2), math.degrees(lam2)


class TestDistance:
    """Known-distance and edge-case tests."""

    def test_columbus_nashville(self):
        """Columbus, OH to Nashville, TN should be ~334 miles."""
        assert distance(39.9612, -82.9988, 36.1627, -86.7816) == pytest.approx(334, rel=0.02)

    def test_short_hop(self):
        """Columbus to Delaware, OH should be ~24 miles."""
        assert distance(39.9612, -82.9988, 40.2987, -83.0680) == pytest.approx(23.6, rel=0.03)

    def test_same_point(self):
        assert distance(36.0, -86.0, 36.0, -86.0) == 0.0

    def test_symmetric(self):
        a = distance(39.9612, -82.9988, 36.1627, -86.7816)
        b = distance(36.1627, -86.7816, 39.9612, -82.9988)
        assert a == pytest.approx(b)

    @pytest.mark.parametrize("coords", [
        (math.nan, -82.9, 36.1, -86.7),
        (39.9, math.nan, 36.1, -86.7),
        (39.9, -82.9, math.nan, -86.7),
        (39.9, -82.9, 36.1, math.nan),
    ])
    def test_nan_propagates(self, coords):
        assert math.isnan(distance(*coords))


class TestBoundingBox:
    def test_latitude_span(self):
        box = bounding_box(40.0, -83.0, 69.0)
        assert box.min_lat == pytest.approx(39.0)
        assert box.max_lat == pytest.approx(41.0)

    def test_longitude_widens_with_latitude(self):
        equator = bounding_box(0.0, 0.0, 50.0)
        north = bounding_box(60.0, 0.0, 50.0)
        assert (north.max_lon - north.min_lon) == pytest.approx(2 * (equator.max_lon - equator.min_lon), rel=0.01)

    def test_pole_spans_all_longitudes(self):
        box = bounding_box(90.0, 10.0, 25.0)
        assert box.min_lon == -180.0
        assert box.max_lon == 180.0
        assert box.max_lat == 90.0

    def test_near_pole_wide_radius_spans_all_longitudes(self):
        box = bounding_box(89.9, 0.0, 100.0)
        assert (box.min_lon, box.max_lon) == (-180.0, 180.0)

    def test_latitude_clamped(self):
        box = bounding_box(-89.5, 0.0, 100.0)
        assert box.min_lat == -90.0

    def test_contains(self):
        box = BoundingBox(min_lat=39.0, max_lat=41.0, min_lon=-84.0, max_lon=-82.0)
        assert box.contains(40.0, -83.0)
        assert box.contains(39.0, -84.0)
        assert not box.contains(41.5, -83.0)
        assert not box.contains(40.0, -81.9)

    @given(
        lat=st.floats(min_value=-60, max_value=60),
        lon=st.floats(min_value=-170, max_value=170),
        radius=st.floats(min_value=1, max_value=150),
        bearing=st.floats(min_value=0, max_value=360),
        frac=st.floats(min_value=0, max_value=0.999),
    )
    @settings(max_examples=300)
    def test_box_contains_every_point_within_radius(self, lat, lon, radius, bearing, frac):
        """The coarse pre-filter never drops a point inside the radius."""
        dlat, dlon = _destination(lat, lon, bearing, radius * frac)
        assert distance(lat, lon, dlat, dlon) <= radius
        assert bounding_box(lat, lon, radius).contains(dlat, dlon)
