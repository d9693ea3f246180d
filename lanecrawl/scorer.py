"""Freight desirability scoring for lane candidates.

The score is a sum of independent, bounded signals. Every weight and
table comes from HeuristicTable so results are reproducible per version.
"""

from __future__ import annotations

from lanecrawl.heuristics import HeuristicTable
from lanecrawl.models import Candidate, City


def _clamp01(x: float) -> float:
    return min(1.0, max(0.0, x))


def distance_signal(miles: float, max_radius: float, table: HeuristicTable) -> float:
    """Closer is better, scaled to the active radius ceiling."""
    if max_radius <= 0:
        return 0.0
    return table.distance_weight * _clamp01(1.0 - miles / max_radius)


def population_signal(city: City, table: HeuristicTable) -> float:
    return table.population_bonus(city.population)


def equipment_signal(city: City, equipment: str, table: HeuristicTable) -> float:
    """Keyword, region and hub affinity for the equipment's family."""
    profile = table.profile(table.family_for(equipment))
    name = city.name.lower()
    bonus = 0.0
    if any(kw in name for kw in profile.keywords):
        bonus += profile.keyword_bonus
    bonus += profile.regions.get(city.region, 0.0)
    if table.is_hub(city.name, city.region):
        bonus += profile.hub_bonus
    return bonus


def override_signal(city: City, base: City, table: HeuristicTable) -> float:
    return table.override_bonus(base.key, city.key)


def cross_region_signal(city: City, base: City, table: HeuristicTable) -> float:
    return table.cross_region_bonus if city.region != base.region else 0.0


def explain(
    candidate: Candidate,
    base: City,
    equipment: str,
    max_radius: float,
    table: HeuristicTable,
) -> dict[str, float]:
    """Per-signal breakdown of a candidate's score."""
    city = candidate.city
    return {
        "distance": distance_signal(candidate.distance, max_radius, table),
        "population": population_signal(city, table),
        "equipment": equipment_signal(city, equipment, table),
        "override": override_signal(city, base, table),
        "cross_region": cross_region_signal(city, base, table),
    }


def score(
    candidate: Candidate,
    base: City,
    equipment: str,
    max_radius: float,
    table: HeuristicTable,
) -> float:
    """Total desirability of a candidate relative to its side's base."""
    return round(sum(explain(candidate, base, equipment, max_radius, table).values()), 6)


def score_candidates(
    candidates: list[Candidate],
    base: City,
    equipment: str,
    max_radius: float,
    table: HeuristicTable,
) -> list[Candidate]:
    """Return copies of candidates with scores filled in."""
    return [
        c.model_copy(update={"score": score(c, base, equipment, max_radius, table)})
        for c in candidates
    ]


def rank(candidates: list[Candidate]) -> list[Candidate]:
    """Score descending, then distance ascending, then city key."""
    return sorted(candidates, key=lambda c: (-c.score, c.distance, c.key))
