"""Lane pairing orchestration.

Resolves both bases, runs the pickup and delivery selections concurrently
in worker threads, then zips the results into pairs.
"""

import asyncio
import logging
import threading
from typing import Optional

from lanecrawl.assembler import assemble_pairs
from lanecrawl.catalog import CityCatalog, ResolutionError
from lanecrawl.config import Settings
from lanecrawl.geocoder import Geocoder
from lanecrawl.heuristics import HeuristicTable
from lanecrawl.markets import MarketResolver
from lanecrawl.models import City, LaneRequest, LaneResult, LocationRef, Side, SideSelection
from lanecrawl.selector import DiversitySelector, SearchTier, build_tiers
from lanecrawl.source import CandidateSource

logger = logging.getLogger(__name__)


class PairingEngine:
    """Produces market-diverse pickup/delivery alternatives for a lane.

    The catalog, geocoder and heuristic table are shared read-only across
    requests; everything else is created per request and per side.
    """

    def __init__(
        self,
        catalog: CityCatalog,
        geocoder: Optional[Geocoder] = None,
        table: Optional[HeuristicTable] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.catalog = catalog
        self.geocoder = geocoder
        self.table = table or HeuristicTable()
        self.settings = settings or Settings()

    def resolve_base(self, ref: LocationRef) -> City:
        """Look up a base city; fill in its market code if the catalog lacks one.

        Raises ResolutionError when the city is not in the catalog.
        """
        city = self.catalog.find_city(ref.city, ref.region)
        if city is None:
            raise ResolutionError(f"{ref.label} not found in catalog (or has no coordinates)")
        if not city.market_code:
            city, synthesized = MarketResolver(self.catalog).assign(city)
            logger.info(
                "Base %s has no market code, assigned %s%s",
                city.label,
                city.market_code,
                " (placeholder)" if synthesized else "",
            )
        return city

    def _select_side(
        self,
        base: City,
        side: Side,
        request: LaneRequest,
        tiers: list[SearchTier],
        cancel_event: threading.Event,
    ) -> SideSelection:
        resolver = MarketResolver(self.catalog)
        source = CandidateSource(
            self.catalog,
            geocoder=self.geocoder,
            resolver=resolver,
            sparse_threshold=self.settings.sparse_threshold,
        )
        selector = DiversitySelector(
            source,
            self.table,
            equipment=request.equipment,
            required=request.required_pairs,
            tiers=tiers,
            policy=request.shortfall_policy,
            cancel_event=cancel_event,
        )
        return selector.select(base, side)

    async def pair_lane_async(self, request: LaneRequest) -> LaneResult:
        # Catalog reads block, keep them off the event loop
        origin, destination = await asyncio.gather(
            asyncio.to_thread(self.resolve_base, request.origin),
            asyncio.to_thread(self.resolve_base, request.destination),
        )
        tiers = build_tiers(request.max_radius, self.settings.radius_ceilings, self.settings.bands)

        cancel_event = threading.Event()
        try:
            pickups, deliveries = await asyncio.gather(
                asyncio.to_thread(self._select_side, origin, Side.PICKUP, request, tiers, cancel_event),
                asyncio.to_thread(
                    self._select_side, destination, Side.DELIVERY, request, tiers, cancel_event
                ),
            )
        except BaseException:
            # Let the sibling worker stop at its next band
            cancel_event.set()
            raise

        pairs, reason = assemble_pairs(pickups, deliveries, request.required_pairs)
        result = LaneResult(
            base_origin=origin,
            base_destination=destination,
            pairs=pairs,
            required_count=request.required_pairs,
            shortfall_reason=reason,
            relaxed=pickups.relaxed or deliveries.relaxed,
            policy=request.shortfall_policy,
            equipment=request.equipment,
        )
        logger.info(
            "%s -> %s: %d/%d pairs",
            origin.label,
            destination.label,
            result.achieved_count,
            result.required_count,
        )
        return result

    def pair_lane(self, request: LaneRequest) -> LaneResult:
        """Synchronous wrapper around pair_lane_async."""
        return asyncio.run(self.pair_lane_async(request))
