"""Tests for candidate discovery."""

import logging

import pytest

from lanecrawl.catalog import CatalogUnavailableError, InMemoryCityCatalog
from lanecrawl.geocoder import GeocoderQuotaError, Place
from lanecrawl.models import DiscoverySource
from lanecrawl.source import CandidateSource, is_synthetic_name

# Offsets due north of the base: 0.1 deg latitude ~ 6.9 mi


@pytest.fixture
def base(city_factory):
    return city_factory("Hub", "OH", 40.0, -83.0, "M_BASE", 500_000)


@pytest.fixture
def catalog(base, city_factory):
    return InMemoryCityCatalog([
        base,
        city_factory("Same", "OH", 40.1, -83.0, "M_BASE", 1_000),
        city_factory("Alpha", "OH", 40.2, -83.0, "M_A", 5_000),
        city_factory("Bravo", "OH", 40.3, -83.0, "M_B", 2_000),
        city_factory("Charlie", "OH", 40.45, -83.0, "M_C", 3_000),
        city_factory("Alpha Metro", "OH", 40.1, -83.0, "M_X", 90_000),
    ])


def _place(name, lat, lon=-83.0, region="OH"):
    return Place(name=name, region=region, latitude=lat, longitude=lon)


def _names(candidates):
    return sorted(c.city.name for c in candidates)


class TestSyntheticNames:
    @pytest.mark.parametrize("name", ["Columbus Metro", "Zone 4", "Tri-State Region", "Dayton Area"])
    def test_synthetic(self, name):
        assert is_synthetic_name(name)

    @pytest.mark.parametrize("name", ["Metropolis", "Arealville", "Ozone Park", "Columbus"])
    def test_real(self, name):
        assert not is_synthetic_name(name)


class TestCatalogCandidates:
    def test_band_filter_and_base_market_excluded(self, catalog, base):
        found = CandidateSource(catalog).fetch_candidates(base, 0, 25)
        assert _names(found) == ["Alpha", "Bravo"]
        assert all(c.source == DiscoverySource.CATALOG for c in found)
        assert all(0 <= c.distance <= 25 for c in found)

    def test_outer_band(self, catalog, base):
        found = CandidateSource(catalog).fetch_candidates(base, 25, 35)
        assert _names(found) == ["Charlie"]
        assert found[0].band.label == "25-35"

    def test_allow_base_market(self, catalog, base):
        found = CandidateSource(catalog).fetch_candidates(base, 0, 25, allow_base_market=True)
        assert _names(found) == ["Alpha", "Bravo", "Same"]

    def test_excluded_markets(self, catalog, base):
        found = CandidateSource(catalog).fetch_candidates(base, 0, 25, {"m_a"})
        assert _names(found) == ["Bravo"]

    def test_catalog_failure_propagates(self, base):
        class BrokenCatalog:
            def cities_in_box(self, box, exclude_market=None):
                raise CatalogUnavailableError("disk gone")

            def find_city(self, name, region):
                return None

        with pytest.raises(CatalogUnavailableError):
            CandidateSource(BrokenCatalog()).fetch_candidates(base, 0, 25)


class TestGeocoderFallback:
    def test_adds_new_places_with_resolved_market(self, catalog, base, fake_geocoder):
        geo = fake_geocoder([_place("Alpha", 40.2), _place("Delta", 40.25), _place("Echo", 45.0)])
        found = CandidateSource(catalog, geocoder=geo).fetch_candidates(base, 0, 25)
        assert _names(found) == ["Alpha", "Bravo", "Delta"]
        delta = next(c for c in found if c.city.name == "Delta")
        assert delta.source == DiscoverySource.GEOCODER
        assert delta.market_code == "M_A"
        assert not delta.market_synthesized
        alpha = next(c for c in found if c.city.name == "Alpha")
        assert alpha.source == DiscoverySource.CATALOG

    def test_query_bounded_by_band(self, catalog, base, fake_geocoder):
        geo = fake_geocoder()
        CandidateSource(catalog, geocoder=geo).fetch_candidates(base, 25, 35)
        assert geo.calls == [(40.0, -83.0, 35, "city")]

    def test_excluded_market_applies_to_places(self, catalog, base, fake_geocoder):
        geo = fake_geocoder([_place("Delta", 40.25)])
        found = CandidateSource(catalog, geocoder=geo).fetch_candidates(base, 0, 25, {"M_A"})
        assert _names(found) == ["Bravo"]

    def test_place_in_base_market_excluded(self, catalog, base, fake_geocoder):
        geo = fake_geocoder([_place("Nearby", 40.05)])
        found = CandidateSource(catalog, geocoder=geo).fetch_candidates(base, 0, 25)
        assert "Nearby" not in _names(found)

    def test_base_city_never_returned(self, catalog, base, fake_geocoder):
        geo = fake_geocoder([_place("hub", 40.0)])
        found = CandidateSource(catalog, geocoder=geo).fetch_candidates(base, 0, 25, allow_base_market=True)
        assert "hub" not in [c.key.split("|")[0] for c in found]

    def test_not_called_when_catalog_dense(self, catalog, base, fake_geocoder):
        geo = fake_geocoder([_place("Delta", 40.25)])
        CandidateSource(catalog, geocoder=geo, sparse_threshold=2).fetch_candidates(base, 0, 25)
        assert geo.calls == []

    def test_failure_is_not_fatal(self, catalog, base, fake_geocoder, caplog):
        geo = fake_geocoder(error=GeocoderQuotaError("quota"))
        with caplog.at_level(logging.WARNING, logger="lanecrawl.source"):
            found = CandidateSource(catalog, geocoder=geo).fetch_candidates(base, 0, 25)
        assert _names(found) == ["Alpha", "Bravo"]
        assert "catalog only" in caplog.text

    def test_responses_memoized_per_radius(self, catalog, base, fake_geocoder):
        geo = fake_geocoder([_place("Delta", 40.25)])
        source = CandidateSource(catalog, geocoder=geo)
        source.fetch_candidates(base, 0, 25)
        source.fetch_candidates(base, 0, 25, {"M_A"})
        source.fetch_candidates(base, 25, 35)
        assert len(geo.calls) == 2
