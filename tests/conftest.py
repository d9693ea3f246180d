"""Shared test fixtures for lanecrawl."""

from pathlib import Path

import pytest
import yaml

from lanecrawl.catalog import InMemoryCityCatalog, YamlCityCatalog
from lanecrawl.heuristics import HeuristicTable
from lanecrawl.models import City

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def make_city(name, region, lat, lon, market=None, population=0, postal_code=None) -> City:
    """Build a City with positional coordinates, for hand-made test catalogs."""
    return City(
        name=name,
        region=region,
        latitude=lat,
        longitude=lon,
        market_code=market,
        population=population,
        postal_code=postal_code,
    )


@pytest.fixture
def load_yaml():
    """Return a function that loads a YAML fixture file."""

    def _load(name: str) -> dict:
        path = FIXTURES_DIR / name
        with open(path) as f:
            return yaml.safe_load(f)

    return _load


@pytest.fixture(autouse=True)
def _fresh_yaml_cache():
    """Each test starts with an empty YAML catalog cache."""
    YamlCityCatalog.invalidate_all()
    yield
    YamlCityCatalog.invalidate_all()


@pytest.fixture(scope="session")
def table():
    return HeuristicTable()


@pytest.fixture
def oh_tn_catalog():
    """Columbus, OH / Nashville, TN catalog with plenty of distinct markets."""
    return YamlCityCatalog(FIXTURES_DIR / "ohio_tennessee.yaml")


@pytest.fixture
def west_texas_catalog():
    """Sparse Alpine, TX / El Paso, TX catalog."""
    return YamlCityCatalog(FIXTURES_DIR / "west_texas.yaml")


@pytest.fixture
def oh_tn_cities(load_yaml):
    return [City.model_validate(row) for row in load_yaml("ohio_tennessee.yaml")["cities"]]


@pytest.fixture
def memory_catalog(oh_tn_cities):
    return InMemoryCityCatalog(oh_tn_cities)


class FakeGeocoder:
    """Geocoder double returning canned places and counting calls."""

    def __init__(self, places=None, error=None):
        self.places = list(places or [])
        self.error = error
        self.calls = []

    def places_near(self, lat, lon, radius_miles, category="city"):
        self.calls.append((lat, lon, radius_miles, category))
        if self.error is not None:
            raise self.error
        return list(self.places)


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder


@pytest.fixture
def city_factory():
    return make_city
