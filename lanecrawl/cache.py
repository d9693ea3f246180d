"""JSON file cache for geocoder responses.

Entries live under ~/.lanecrawl/cache/<namespace>/ as one JSON file each,
stamped with the write time so stale entries expire after the TTL.
"""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = Path.home() / ".lanecrawl" / "cache"
DEFAULT_TTL_HOURS = 24.0


def cache_key(*parts: Any) -> str:
    """Join key parts into a stable cache key.

    Floats are rounded to 4 decimals (~11 m) so nearby repeat queries hit
    the same entry.
    """
    norm = []
    for part in parts:
        if isinstance(part, float):
            norm.append(f"{part:.4f}")
        else:
            norm.append(str(part).strip().lower())
    return ":".join(norm)


class ResponseCache:
    """Provider response cache with TTL-based expiry."""

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        ttl_hours: float = DEFAULT_TTL_HOURS,
        namespace: str = "here",
    ) -> None:
        self.root = Path(cache_dir or DEFAULT_CACHE_DIR)
        self.namespace = namespace
        self.ttl_hours = ttl_hours

    @property
    def directory(self) -> Path:
        return self.root / self.namespace

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:24]
        return self.directory / f"{digest}.json"

    def put(self, key: str, data: Any) -> None:
        """Store JSON-serializable data under key."""
        self.directory.mkdir(parents=True, exist_ok=True)
        entry = {"key": key, "stored_at": time.time(), "data": data}
        self._path_for(key).write_text(json.dumps(entry), encoding="utf-8")

    def get(self, key: str) -> Optional[Any]:
        """Return cached data, or None when missing, unreadable or expired."""
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.debug("Unreadable cache entry %s: %s", path.name, exc)
            return None

        # Digest collision
        if entry.get("key") != key:
            return None

        age_s = time.time() - float(entry.get("stored_at", 0))
        if age_s > self.ttl_hours * 3600:
            path.unlink(missing_ok=True)
            return None
        return entry.get("data")

    def clear(self) -> int:
        """Delete every entry in this namespace. Returns the count removed."""
        if not self.directory.exists():
            return 0
        removed = 0
        for path in self.directory.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as exc:
                logger.warning("Could not remove cache file %s: %s", path, exc)
        return removed
