"""Runtime settings.

Read from ~/.lanecrawl/config.yaml when it exists, then overridden by
environment variables. The HERE API key may also live in the system
keyring (``lanecrawl config set-here-key``).
"""

import logging
import os
from pathlib import Path
from typing import Optional

import keyring
import yaml
from keyring.errors import KeyringError
from pydantic import BaseModel, Field, ValidationError, field_validator

from lanecrawl.cache import DEFAULT_CACHE_DIR, DEFAULT_TTL_HOURS
from lanecrawl.models import DEFAULT_BANDS, DEFAULT_CEILINGS, DistanceBand, ShortfallPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".lanecrawl" / "config.yaml"

KEYRING_SERVICE = "lanecrawl"
KEYRING_HERE_USER = "here_api_key"

_ENV_OVERRIDES = {
    "LANECRAWL_CATALOG": "catalog_path",
    "LANECRAWL_CACHE_DIR": "cache_dir",
    "HERE_API_KEY": "here_api_key",
}


class Settings(BaseModel):
    """Tunables for catalog access, the geocoder and the selector."""

    catalog_path: Optional[Path] = None
    cache_dir: Path = DEFAULT_CACHE_DIR
    cache_ttl_hours: float = Field(default=DEFAULT_TTL_HOURS, gt=0)
    here_api_key: Optional[str] = None
    geocoder_timeout_s: float = Field(default=10.0, gt=0)
    geocoder_limit: int = Field(default=100, ge=1, le=100)
    sparse_threshold: int = Field(default=10, ge=0)
    required_pairs: int = Field(default=6, ge=1, le=50)
    radius_ceilings: list[float] = Field(default_factory=lambda: list(DEFAULT_CEILINGS))
    bands: list[DistanceBand] = Field(default_factory=lambda: list(DEFAULT_BANDS))
    shortfall_policy: ShortfallPolicy = ShortfallPolicy.RELAX

    @field_validator("catalog_path", "cache_dir", mode="before")
    @classmethod
    def expand_user(cls, v):
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("radius_ceilings")
    @classmethod
    def ceilings_ascending(cls, v: list[float]) -> list[float]:
        if not v:
            raise ValueError("at least one radius ceiling is required")
        if any(c <= 0 for c in v):
            raise ValueError("radius ceilings must be positive")
        return sorted(set(v))

    @field_validator("bands")
    @classmethod
    def bands_ordered(cls, v: list[DistanceBand]) -> list[DistanceBand]:
        if not v:
            raise ValueError("at least one distance band is required")
        v = sorted(v, key=lambda b: b.min_miles)
        for prev, cur in zip(v, v[1:]):
            if cur.min_miles < prev.max_miles:
                raise ValueError(f"distance bands overlap: {prev.label} and {cur.label}")
        return v


def load_settings(path: Optional[Path] = None) -> Settings:
    """Build Settings from the config file and environment.

    A missing file is not an error; a malformed one raises ValueError.
    """
    path = Path(path) if path else DEFAULT_CONFIG_PATH
    data: dict = {}
    if path.exists():
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid config file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Invalid config file {path}: expected a mapping")
        logger.debug("Loaded settings from %s", path)

    for env_var, field in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var, "").strip()
        if value:
            data[field] = value

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings: {exc}") from exc


def resolve_here_key(settings: Optional[Settings] = None) -> Optional[str]:
    """HERE API key from settings/environment, falling back to the keyring."""
    if settings is not None and settings.here_api_key:
        return settings.here_api_key
    env_key = os.environ.get("HERE_API_KEY", "").strip()
    if env_key:
        return env_key
    try:
        return keyring.get_password(KEYRING_SERVICE, KEYRING_HERE_USER) or None
    except KeyringError as exc:
        logger.debug("Keyring lookup failed: %s", exc)
        return None


def store_here_key(api_key: str) -> None:
    """Save the HERE API key in the system keyring."""
    keyring.set_password(KEYRING_SERVICE, KEYRING_HERE_USER, api_key.strip())
