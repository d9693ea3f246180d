"""JSON output formatter -- the caller-facing camelCase response."""

from __future__ import annotations

import json

from lanecrawl.models import Candidate, City, LaneResult, Pair


def city_ref(city: City) -> dict:
    return {"city": city.name, "region": city.region, "postalCode": city.postal_code}


def _base(city: City) -> dict:
    return {
        **city_ref(city),
        "marketCode": city.market_code,
        "latitude": city.latitude,
        "longitude": city.longitude,
    }


def pair_to_dict(pair: Pair) -> dict:
    return {
        "pickup": city_ref(pair.pickup),
        "delivery": city_ref(pair.delivery),
        "score": round(pair.score, 4),
        "pickupDistance": round(pair.pickup_distance, 1),
        "deliveryDistance": round(pair.delivery_distance, 1),
        "pickupMarket": pair.pickup_market,
        "deliveryMarket": pair.delivery_market,
        "tier": pair.tier,
        "pickupTier": pair.pickup_tier,
        "deliveryTier": pair.delivery_tier,
        "marketSynthesized": pair.market_synthesized,
    }


def result_to_dict(result: LaneResult) -> dict:
    data = {
        "baseOrigin": _base(result.base_origin),
        "baseDestination": _base(result.base_destination),
        "equipment": result.equipment,
        "pairs": [pair_to_dict(p) for p in result.pairs],
        "achievedCount": result.achieved_count,
        "requiredCount": result.required_count,
        "relaxed": result.relaxed,
        "policy": result.policy.value,
    }
    if result.shortfall_reason is not None:
        data["shortfallReason"] = result.shortfall_reason.value
    return data


class JsonFormatter:
    """Format pairing results as pretty-printed JSON."""

    def format_result(self, result: LaneResult) -> str:
        return json.dumps(result_to_dict(result), indent=2)

    def format_city(self, city: City) -> str:
        return json.dumps({**_base(city), "marketName": city.market_name, "population": city.population}, indent=2)

    def format_candidates(self, base: City, candidates: list[Candidate]) -> str:
        data = {
            "base": _base(base),
            "candidates": [
                {
                    **city_ref(c.city),
                    "marketCode": c.market_code,
                    "distance": round(c.distance, 1),
                    "score": round(c.score, 4),
                    "source": c.source.value,
                    "marketSynthesized": c.market_synthesized,
                }
                for c in candidates
            ],
        }
        return json.dumps(data, indent=2)
