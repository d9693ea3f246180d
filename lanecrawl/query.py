"""Lane request parsing and validation."""

from __future__ import annotations

import difflib
from typing import Any, Optional, Union

from pydantic import ValidationError

from lanecrawl.models import LaneRequest, LocationRef, ShortfallPolicy

US_STATES = frozenset(
    "AL AK AZ AR CA CO CT DE DC FL GA HI ID IL IN IA KS KY LA ME MD MA MI MN MS MO "
    "MT NE NV NH NJ NM NY NC ND OH OK OR PA RI SC SD TN TX UT VT VA WA WV WI WY".split()
)
CA_PROVINCES = frozenset("AB BC MB NB NL NS NT NU ON PE QC SK YT".split())
REGION_CODES = US_STATES | CA_PROVINCES


def _fuzzy_suggestion(region: str) -> str:
    """Suggest close region codes."""
    matches = difflib.get_close_matches(region.upper(), sorted(REGION_CODES), n=3, cutoff=0.5)
    if matches:
        return f" Did you mean: {', '.join(matches)}?"
    return ""


def _check_region(region: str) -> str:
    code = region.strip().upper()
    if code not in REGION_CODES:
        raise ValueError(f"Unknown state/province code: {region}.{_fuzzy_suggestion(code)}")
    return code


def parse_location(value: Union[str, dict, LocationRef], label: str = "location") -> LocationRef:
    """Parse ``"Columbus, OH"`` or ``{"city": ..., "region"|"state": ...}``.

    Raises ValueError with helpful messages for invalid inputs.
    """
    if isinstance(value, LocationRef):
        return value
    if isinstance(value, dict):
        city = str(value.get("city") or "").strip()
        region = str(value.get("region") or value.get("state") or "").strip()
    elif isinstance(value, str):
        if "," not in value:
            raise ValueError(f"Invalid {label} '{value}': expected 'City, ST'")
        city, _, region = value.rpartition(",")
        city, region = city.strip(), region.strip()
    else:
        raise ValueError(f"Invalid {label}: {value!r}")

    if not city:
        raise ValueError(f"Missing city for {label}")
    if not region:
        raise ValueError(f"Missing state/province for {label}")
    return LocationRef(city=city, region=_check_region(region))


def build_lane_request(
    origin: Union[str, dict, LocationRef],
    destination: Union[str, dict, LocationRef],
    equipment: str = "V",
    required_pairs: int = 6,
    max_radius: float = 100.0,
    policy: Union[str, ShortfallPolicy] = ShortfallPolicy.RELAX,
) -> LaneRequest:
    """Validate inputs into a LaneRequest."""
    origin_ref = parse_location(origin, "origin")
    dest_ref = parse_location(destination, "destination")

    if not equipment or not equipment.strip():
        raise ValueError("Equipment class is required (e.g. V, R, FD)")

    try:
        policy_enum = ShortfallPolicy(policy.lower() if isinstance(policy, str) else policy)
    except ValueError:
        valid = ", ".join(p.value for p in ShortfallPolicy)
        raise ValueError(f"Invalid shortfall policy: {policy}. Valid: {valid}")

    if required_pairs < 1 or required_pairs > 50:
        raise ValueError(f"Pair count must be between 1 and 50, got {required_pairs}")
    if max_radius <= 0 or max_radius > 250:
        raise ValueError(f"Max radius must be in (0, 250] miles, got {max_radius:g}")

    try:
        return LaneRequest(
            origin=origin_ref,
            destination=dest_ref,
            equipment=equipment,
            required_pairs=required_pairs,
            max_radius=max_radius,
            shortfall_policy=policy_enum,
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid lane request: {exc.errors()[0]['msg']}") from exc


def parse_lane_request(payload: dict[str, Any], defaults: Optional[dict[str, Any]] = None) -> LaneRequest:
    """Parse the camelCase request body used by callers.

    ``{origin: {city, region}, destination: {city, region}, equipmentClass,
    requiredPairs?, maxRadius?, shortfallPolicy?}``
    """
    if not isinstance(payload, dict):
        raise ValueError("Lane request must be an object")
    defaults = defaults or {}
    missing = [k for k in ("origin", "destination", "equipmentClass") if not payload.get(k)]
    if missing:
        raise ValueError(f"Lane request missing required field(s): {', '.join(missing)}")

    raw_required = payload.get("requiredPairs", defaults.get("required_pairs", 6))
    raw_radius = payload.get("maxRadius", defaults.get("max_radius", 100.0))
    if isinstance(raw_required, bool) or isinstance(raw_radius, bool):
        raise ValueError("requiredPairs and maxRadius must be numbers")
    try:
        required_f = float(raw_required)
        radius = float(raw_radius)
    except (TypeError, ValueError):
        raise ValueError("requiredPairs and maxRadius must be numbers")
    if not required_f.is_integer():
        raise ValueError("requiredPairs and maxRadius must be numbers")
    required = int(required_f)

    return build_lane_request(
        payload["origin"],
        payload["destination"],
        equipment=str(payload["equipmentClass"]),
        required_pairs=required,
        max_radius=radius,
        policy=payload.get("shortfallPolicy", defaults.get("shortfall_policy", ShortfallPolicy.RELAX)),
    )
