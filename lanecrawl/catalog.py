"""City catalog adapters.

The engine reads cities through the narrow ``CityCatalog`` protocol:
a bounding-box query for candidate discovery and an exact lookup for base
resolution. Three backends are provided: in-memory, a YAML file, and a
SQLite database. The engine never writes to a catalog.
"""

import logging
import math
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, Optional, Protocol

import yaml
from pydantic import ValidationError

from lanecrawl.distance import BoundingBox
from lanecrawl.models import City, city_key

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """Origin or destination could not be matched to a usable catalog city."""


class CatalogUnavailableError(Exception):
    """The catalog backend could not be read."""


class CityCatalog(Protocol):
    def cities_in_box(self, box: BoundingBox, exclude_market: Optional[str] = None) -> list[City]:
        ...

    def find_city(self, name: str, region: str) -> Optional[City]:
        ...


def _ordered(cities: Iterable[City]) -> list[City]:
    return sorted(cities, key=lambda c: (-c.population, c.key))


def _in_box(city: City, box: BoundingBox, exclude_market: Optional[str]) -> bool:
    if not city.market_code:
        return False
    if exclude_market and city.market_code == exclude_market.upper():
        return False
    return box.contains(city.latitude, city.longitude)


def _parse_rows(rows: Iterable[dict], source: str) -> list[City]:
    """Validate raw rows into Cities, skipping rows without usable coordinates."""
    cities = []
    for i, row in enumerate(rows):
        try:
            city = City.model_validate(row)
        except ValidationError as exc:
            logger.warning("Skipping catalog row %d in %s: %s", i, source, exc.errors()[0]["msg"])
            continue
        if math.isnan(city.latitude) or math.isnan(city.longitude):
            logger.warning("Skipping %s in %s: no coordinates", city.label, source)
            continue
        cities.append(city)
    return cities


class InMemoryCityCatalog:
    """Catalog over a fixed list of cities."""

    def __init__(self, cities: Iterable[City]) -> None:
        self._cities = _ordered(cities)
        self._by_key = {c.key: c for c in self._cities}

    def __len__(self) -> int:
        return len(self._cities)

    def cities_in_box(self, box: BoundingBox, exclude_market: Optional[str] = None) -> list[City]:
        return [c for c in self._cities if _in_box(c, box, exclude_market)]

    def find_city(self, name: str, region: str) -> Optional[City]:
        return self._by_key.get(city_key(name, region))

    def all_cities(self) -> list[City]:
        return list(self._cities)


class _LoadedCatalog:
    __slots__ = ("mtime", "catalog")

    def __init__(self, mtime: float, catalog: InMemoryCityCatalog) -> None:
        self.mtime = mtime
        self.catalog = catalog


class YamlCityCatalog:
    """Catalog loaded from a YAML file with a top-level ``cities`` list.

    Parsed files are shared across instances in a process-scoped cache keyed
    by resolved path. An entry is reloaded when the file's mtime changes or
    after ``invalidate()``.
    """

    _cache: dict[Path, _LoadedCatalog] = {}
    _lock = threading.Lock()

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser().resolve()

    def _load(self) -> InMemoryCityCatalog:
        try:
            mtime = self.path.stat().st_mtime
        except OSError as exc:
            raise CatalogUnavailableError(f"Catalog not readable: {self.path} ({exc})") from exc

        with self._lock:
            entry = self._cache.get(self.path)
            if entry is not None and entry.mtime == mtime:
                return entry.catalog

            try:
                with open(self.path) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as exc:
                raise CatalogUnavailableError(f"Catalog not readable: {self.path} ({exc})") from exc

            rows = data.get("cities") if isinstance(data, dict) else None
            if not isinstance(rows, list):
                raise CatalogUnavailableError(f"Catalog {self.path} has no 'cities' list")

            catalog = InMemoryCityCatalog(_parse_rows(rows, self.path.name))
            self._cache[self.path] = _LoadedCatalog(mtime, catalog)
            logger.debug("Loaded %d cities from %s", len(catalog), self.path)
            return catalog

    def invalidate(self) -> None:
        """Drop the cached copy of this file."""
        with self._lock:
            self._cache.pop(self.path, None)

    @classmethod
    def invalidate_all(cls) -> None:
        with cls._lock:
            cls._cache.clear()

    def cities_in_box(self, box: BoundingBox, exclude_market: Optional[str] = None) -> list[City]:
        return self._load().cities_in_box(box, exclude_market)

    def find_city(self, name: str, region: str) -> Optional[City]:
        return self._load().find_city(name, region)

    def all_cities(self) -> list[City]:
        return self._load().all_cities()


_COLUMNS = "name, region, postal_code, latitude, longitude, market_code, market_name, population"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cities (
    name TEXT NOT NULL,
    region TEXT NOT NULL,
    postal_code TEXT,
    latitude REAL,
    longitude REAL,
    market_code TEXT,
    market_name TEXT,
    population INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_cities_lat_lon ON cities (latitude, longitude);
CREATE INDEX IF NOT EXISTS idx_cities_name_region ON cities (name COLLATE NOCASE, region COLLATE NOCASE);
"""


class SqliteCityCatalog:
    """Catalog backed by a SQLite ``cities`` table.

    Opens a short-lived connection per query so one instance can be shared
    across worker threads.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()

    def _connect(self) -> sqlite3.Connection:
        if not self.path.exists():
            raise CatalogUnavailableError(f"Catalog database not found: {self.path}")
        try:
            return sqlite3.connect(f"file:{self.path}?mode=ro", uri=True)
        except sqlite3.Error as exc:
            raise CatalogUnavailableError(f"Cannot open catalog {self.path}: {exc}") from exc

    @staticmethod
    def _row_to_city(row: tuple) -> Optional[City]:
        name, region, postal, lat, lon, market, market_name, pop = row
        if lat is None or lon is None:
            return None
        try:
            return City(
                name=name,
                region=region,
                postal_code=postal,
                latitude=lat,
                longitude=lon,
                market_code=market,
                market_name=market_name,
                population=pop or 0,
            )
        except ValidationError as exc:
            logger.warning("Skipping bad catalog row %s, %s: %s", name, region, exc.errors()[0]["msg"])
            return None

    def _query(self, sql: str, params: tuple) -> list[tuple]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise CatalogUnavailableError(f"Catalog query failed: {exc}") from exc
        finally:
            conn.close()

    def cities_in_box(self, box: BoundingBox, exclude_market: Optional[str] = None) -> list[City]:
        sql = (
            f"SELECT {_COLUMNS} FROM cities "
            "WHERE latitude BETWEEN ? AND ? AND longitude BETWEEN ? AND ? "
            "AND market_code IS NOT NULL AND market_code != ''"
        )
        params: tuple = (box.min_lat, box.max_lat, box.min_lon, box.max_lon)
        if exclude_market:
            sql += " AND UPPER(market_code) != ?"
            params += (exclude_market.upper(),)
        rows = self._query(sql, params)
        return _ordered(c for c in map(self._row_to_city, rows) if c is not None)

    def find_city(self, name: str, region: str) -> Optional[City]:
        rows = self._query(
            f"SELECT {_COLUMNS} FROM cities "
            "WHERE name = ? COLLATE NOCASE AND region = ? COLLATE NOCASE "
            "ORDER BY population DESC LIMIT 1",
            (name.strip(), region.strip()),
        )
        return self._row_to_city(rows[0]) if rows else None

    @classmethod
    def build(cls, path: Path, cities: Iterable[City]) -> "SqliteCityCatalog":
        """Create (or extend) a catalog database from cities."""
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path)
        try:
            conn.executescript(_SCHEMA)
            conn.executemany(
                f"INSERT INTO cities ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        c.name,
                        c.region,
                        c.postal_code,
                        c.latitude,
                        c.longitude,
                        c.market_code,
                        c.market_name,
                        c.population,
                    )
                    for c in cities
                ],
            )
            conn.commit()
        finally:
            conn.close()
        return cls(path)


def open_catalog(path: Path) -> CityCatalog:
    """Pick a catalog backend from the file extension."""
    path = Path(path).expanduser()
    if path.suffix.lower() in (".db", ".sqlite", ".sqlite3"):
        return SqliteCityCatalog(path)
    return YamlCityCatalog(path)
