"""Positional pairing of ranked pickup and delivery selections."""

from typing import Optional

from lanecrawl.models import Pair, ShortfallReason, SideSelection


def assemble_pairs(
    pickups: SideSelection,
    deliveries: SideSelection,
    required: int,
) -> tuple[list[Pair], Optional[ShortfallReason]]:
    """Zip the i-th pickup with the i-th delivery.

    Never produces more than the shorter side or `required`. When fewer
    than `required` pairs result, the reason comes from the short side.
    """
    count = min(len(pickups.candidates), len(deliveries.candidates), required)
    pairs = [
        Pair(
            pickup=p.city,
            delivery=d.city,
            score=round(p.score + d.score, 6),
            pickup_distance=p.distance,
            delivery_distance=d.distance,
            pickup_market=p.market_code,
            delivery_market=d.market_code,
            pickup_tier=p.band.label,
            delivery_tier=d.band.label,
            pickup_market_synthesized=p.market_synthesized,
            delivery_market_synthesized=d.market_synthesized,
        )
        for p, d in zip(pickups.candidates[:count], deliveries.candidates[:count])
    ]

    if count >= required:
        return pairs, None
    for side in (pickups, deliveries):
        if len(side.candidates) == count and side.shortfall_reason is not None:
            return pairs, side.shortfall_reason
    return pairs, ShortfallReason.INSUFFICIENT_UNIQUE_MARKETS
