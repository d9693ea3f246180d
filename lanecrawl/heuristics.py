"""Heuristic table loader for freight desirability scoring."""

from pathlib import Path
from typing import Optional

import yaml

from lanecrawl.models import EquipmentFamily, city_key

_DATA_DIR = Path(__file__).parent / "data"

# Map equipment family enum to YAML keys
_FAMILY_KEY = {
    EquipmentFamily.VAN: "van",
    EquipmentFamily.REEFER: "reefer",
    EquipmentFamily.FLATBED: "flatbed",
}


class EquipmentProfile:
    """Affinity signals for one equipment family."""

    __slots__ = ("family", "keywords", "keyword_bonus", "regions", "hub_bonus")

    def __init__(
        self,
        family: EquipmentFamily,
        keywords: tuple[str, ...],
        keyword_bonus: float,
        regions: dict[str, float],
        hub_bonus: float,
    ):
        self.family = family
        self.keywords = keywords
        self.keyword_bonus = keyword_bonus
        self.regions = regions
        self.hub_bonus = hub_bonus

    def __repr__(self) -> str:
        return f"EquipmentProfile({self.family.value} kw={len(self.keywords)} regions={len(self.regions)})"


class HeuristicTable:
    """Loads and queries the versioned scoring tables in heuristics.yaml."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or (_DATA_DIR / "heuristics.yaml")
        with open(self._path) as f:
            self._data = yaml.safe_load(f)
        self.version: int = int(self._data.get("version", 0))

        weights = self._data.get("weights", {})
        self.distance_weight: float = float(weights.get("distance", 0.0))
        self.cross_region_bonus: float = float(weights.get("cross_region", 0.0))

        tiers = self._data.get("population_tiers", [])
        self.population_tiers: list[tuple[int, float]] = sorted(
            ((int(t["min"]), float(t["bonus"])) for t in tiers),
            reverse=True,
        )

        self._code_to_family: dict[str, EquipmentFamily] = {}
        self._profiles: dict[EquipmentFamily, EquipmentProfile] = {}
        self._hubs: dict[str, frozenset[str]] = {}
        self._overrides: dict[str, dict[str, float]] = {}
        self._load_equipment()
        self._load_hubs()
        self._load_overrides()

    def _load_equipment(self) -> None:
        for family_name, codes in self._data.get("equipment_codes", {}).items():
            family = EquipmentFamily(family_name)
            for code in codes:
                self._code_to_family[str(code).upper()] = family

        equipment = self._data.get("equipment", {})
        for family, key in _FAMILY_KEY.items():
            entry = equipment.get(key, {})
            self._profiles[family] = EquipmentProfile(
                family=family,
                keywords=tuple(k.lower() for k in entry.get("keywords", [])),
                keyword_bonus=float(entry.get("keyword_bonus", 0.0)),
                regions={r.upper(): float(b) for r, b in entry.get("regions", {}).items()},
                hub_bonus=float(entry.get("hub_bonus", 0.0)),
            )

    def _load_hubs(self) -> None:
        for region, names in self._data.get("hubs", {}).items():
            self._hubs[region.upper()] = frozenset(n.lower() for n in names)

    def _load_overrides(self) -> None:
        for group in self._data.get("regional_overrides", []):
            bonuses = {
                city_key(c["city"], c["region"]): float(c["bonus"])
                for c in group.get("candidates", [])
            }
            for base in group.get("bases", []):
                merged = self._overrides.setdefault(city_key(base["city"], base["region"]), {})
                for key, bonus in bonuses.items():
                    merged[key] = max(bonus, merged.get(key, 0.0))

    def family_for(self, equipment: str) -> EquipmentFamily:
        """Map an equipment class code to its family. Unknown codes are van."""
        return self._code_to_family.get(equipment.strip().upper(), EquipmentFamily.VAN)

    def profile(self, family: EquipmentFamily) -> EquipmentProfile:
        return self._profiles[family]

    def is_hub(self, name: str, region: str) -> bool:
        """Whether a city is a known distribution hub in its region."""
        return name.strip().lower() in self._hubs.get(region.strip().upper(), frozenset())

    def population_bonus(self, population: int) -> float:
        """Step bonus of the highest population threshold exceeded."""
        for threshold, bonus in self.population_tiers:
            if population > threshold:
                return bonus
        return 0.0

    def override_bonus(self, base_key: str, candidate_key: str) -> float:
        """Named regional-hub bonus for a base/candidate combination."""
        return self._overrides.get(base_key, {}).get(candidate_key, 0.0)

    def override_bases(self) -> list[str]:
        """Base city keys that carry named overrides."""
        return sorted(self._overrides)
