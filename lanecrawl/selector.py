"""Market-diverse candidate selection for one side of a lane.

Distance bands are searched inner to outer under escalating radius
ceilings. Each market code may be admitted once per side; under the relax
policy a second pass may reuse a market when the reuse comes from a
different band.
"""

import logging
import threading
from typing import Iterable, NamedTuple, Optional, Sequence

from lanecrawl.heuristics import HeuristicTable
from lanecrawl.models import (
    DEFAULT_BANDS,
    DEFAULT_CEILINGS,
    Candidate,
    City,
    DistanceBand,
    ShortfallPolicy,
    ShortfallReason,
    Side,
    SideSelection,
)
from lanecrawl.scorer import rank, score_candidates
from lanecrawl.source import CandidateSource

logger = logging.getLogger(__name__)


class PairingCancelled(Exception):
    """Raised inside a side selection when the request was cancelled."""


class SearchTier(NamedTuple):
    ceiling: float
    band: DistanceBand


def build_tiers(
    max_radius: float,
    ceilings: Sequence[float] = DEFAULT_CEILINGS,
    bands: Sequence[DistanceBand] = DEFAULT_BANDS,
) -> list[SearchTier]:
    """Nest distance bands inside radius ceilings, capped at max_radius.

    A band belongs to the first ceiling at or above its upper bound.
    Ceilings beyond max_radius are dropped and max_radius becomes the last
    ceiling. A band straddling max_radius is truncated to it, and when
    max_radius lies past the last band an outer band is added to reach it.
    """
    if max_radius <= 0:
        raise ValueError("max_radius must be positive")

    active = sorted(c for c in set(ceilings) if c < max_radius)
    active.append(float(max_radius))

    ordered = sorted(bands, key=lambda b: b.min_miles)
    usable: list[DistanceBand] = []
    for band in ordered:
        if band.min_miles >= max_radius:
            break
        if band.max_miles > max_radius:
            band = DistanceBand(min_miles=band.min_miles, max_miles=max_radius)
        usable.append(band)
    outer = usable[-1].max_miles if usable else 0.0
    if outer < max_radius:
        usable.append(DistanceBand(min_miles=outer, max_miles=max_radius))

    tiers = []
    for band in usable:
        ceiling = next(c for c in active if c >= band.max_miles)
        tiers.append(SearchTier(ceiling=ceiling, band=band))
    return tiers


class MarketUsageSet:
    """Market codes consumed on one side, with the bands that admitted them."""

    def __init__(self) -> None:
        self._bands: dict[str, set[str]] = {}

    def __contains__(self, code: str) -> bool:
        return code.upper() in self._bands

    def __len__(self) -> int:
        return len(self._bands)

    def add(self, code: str, band: DistanceBand) -> None:
        self._bands.setdefault(code.upper(), set()).add(band.label)

    def bands_for(self, code: str) -> frozenset[str]:
        return frozenset(self._bands.get(code.upper(), ()))

    def codes(self) -> frozenset[str]:
        return frozenset(self._bands)


class DiversitySelector:
    """Picks up to `required` market-distinct candidates around one base."""

    def __init__(
        self,
        source: CandidateSource,
        table: HeuristicTable,
        equipment: str,
        required: int,
        tiers: Sequence[SearchTier],
        policy: ShortfallPolicy = ShortfallPolicy.RELAX,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.source = source
        self.table = table
        self.equipment = equipment
        self.required = required
        self.tiers = list(tiers)
        self.policy = policy
        self.cancel_event = cancel_event
        self.usage = MarketUsageSet()

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PairingCancelled("pairing cancelled")

    def _ranked(self, base: City, tier: SearchTier, excluded: Iterable[str], relaxed: bool) -> list[Candidate]:
        self._check_cancelled()
        found = self.source.fetch_candidates(
            base,
            tier.band.min_miles,
            tier.band.max_miles,
            excluded,
            allow_base_market=relaxed,
        )
        return rank(score_candidates(found, base, self.equipment, tier.ceiling, self.table))

    def select(self, base: City, side: Side) -> SideSelection:
        admitted: list[Candidate] = []
        seen_keys: set[str] = set()

        for tier in self.tiers:
            if len(admitted) >= self.required:
                break
            for cand in self._ranked(base, tier, self.usage.codes(), relaxed=False):
                if len(admitted) >= self.required:
                    break
                if cand.key in seen_keys or not cand.market_code or cand.market_code in self.usage:
                    continue
                if cand.market_synthesized and self.policy == ShortfallPolicy.NEVER_PAD:
                    continue
                self._admit(cand, admitted, seen_keys)
            logger.debug(
                "%s %s: %d/%d after band %s (ceiling %g)",
                side.value,
                base.label,
                len(admitted),
                self.required,
                tier.band.label,
                tier.ceiling,
            )

        relaxed = False
        if len(admitted) < self.required and self.policy == ShortfallPolicy.RELAX:
            relaxed = True
            self._relax(base, admitted, seen_keys)

        reason = None
        if len(admitted) < self.required:
            reason = (
                ShortfallReason.INSUFFICIENT_AFTER_RELAXATION
                if relaxed
                else ShortfallReason.INSUFFICIENT_UNIQUE_MARKETS
            )
            logger.warning(
                "%s side of %s: %d of %d diverse candidates (%s)",
                side.value,
                base.label,
                len(admitted),
                self.required,
                reason.value,
            )
        return SideSelection(side=side, candidates=admitted, relaxed=relaxed, shortfall_reason=reason)

    def _relax(self, base: City, admitted: list[Candidate], seen_keys: set[str]) -> None:
        """Second pass: a market may repeat, but only from a different band."""
        for tier in self.tiers:
            if len(admitted) >= self.required:
                return
            for cand in self._ranked(base, tier, (), relaxed=True):
                if len(admitted) >= self.required:
                    return
                if cand.key in seen_keys or not cand.market_code:
                    continue
                if cand.band.label in self.usage.bands_for(cand.market_code):
                    continue
                self._admit(cand, admitted, seen_keys)

    def _admit(self, cand: Candidate, admitted: list[Candidate], seen_keys: set[str]) -> None:
        admitted.append(cand)
        seen_keys.add(cand.key)
        self.usage.add(cand.market_code, cand.band)
