"""Tests for tier construction and market-diverse selection."""

import threading
from collections import Counter

import hypothesis.strategies as st
import pytest
from hypothesis import given, settings

from lanecrawl.heuristics import HeuristicTable
from lanecrawl.models import (
    Candidate,
    City,
    DistanceBand,
    ShortfallPolicy,
    ShortfallReason,
    Side,
)
from lanecrawl.selector import (
    DiversitySelector,
    MarketUsageSet,
    PairingCancelled,
    build_tiers,
)
from lanecrawl.source import CandidateSource

TABLE = HeuristicTable()
BASE = City(name="Hub", region="OH", latitude=40.0, longitude=-83.0, market_code="M_BASE")
INNER = DistanceBand(min_miles=0, max_miles=25)
OUTER = DistanceBand(min_miles=25, max_miles=35)
TWO_TIERS = build_tiers(35, ceilings=(50,), bands=(INNER, OUTER))


def _cand(name, market, band, miles, synthesized=False):
    city = City(name=name, region="OH", latitude=40.0, longitude=-83.0, market_code=market)
    return Candidate(city=city, distance=miles, band=band, market_synthesized=synthesized)


class StubSource:
    """Serves fixed candidates per band, honouring market exclusion."""

    def __init__(self, candidates):
        self.candidates = candidates
        self.calls = []

    def fetch_candidates(self, base, min_miles, max_miles, excluded_market_codes=(), allow_base_market=False):
        self.calls.append((min_miles, max_miles, allow_base_market))
        excluded = set(excluded_market_codes)
        return [
            c for c in self.candidates
            if c.band.min_miles == min_miles and c.band.max_miles == max_miles
            and c.market_code not in excluded
        ]


def _selector(source, required, policy=ShortfallPolicy.RELAX, tiers=TWO_TIERS, cancel_event=None):
    return DiversitySelector(
        source, TABLE, equipment="V", required=required, tiers=tiers, policy=policy, cancel_event=cancel_event
    )


# --- Tiers ---


class TestBuildTiers:
    def _shape(self, tiers):
        return [(t.band.label, t.ceiling) for t in tiers]

    def test_default_progression(self):
        assert self._shape(build_tiers(100)) == [
            ("0-25", 50), ("25-35", 50), ("35-50", 50), ("50-75", 75), ("75-100", 100),
        ]

    def test_maximum_ceiling(self):
        assert self._shape(build_tiers(75)) == [
            ("0-25", 50), ("25-35", 50), ("35-50", 50), ("50-75", 75),
        ]

    def test_straddling_band_truncated(self):
        assert self._shape(build_tiers(60)) == [
            ("0-25", 50), ("25-35", 50), ("35-50", 50), ("50-60", 60),
        ]

    def test_small_radius(self):
        assert self._shape(build_tiers(30)) == [("0-25", 30), ("25-30", 30)]

    def test_radius_beyond_last_band(self):
        tiers = build_tiers(150)
        assert self._shape(tiers)[-1] == ("100-150", 150)
        assert len(tiers) == 6

    def test_invalid_radius(self):
        with pytest.raises(ValueError):
            build_tiers(0)


# --- MarketUsageSet ---


class TestMarketUsageSet:
    def test_add_and_contains(self):
        usage = MarketUsageSet()
        usage.add("oh_col", INNER)
        assert "OH_COL" in usage
        assert "oh_col" in usage
        assert "OH_DAY" not in usage
        assert len(usage) == 1

    def test_bands_tracked(self):
        usage = MarketUsageSet()
        usage.add("M1", INNER)
        usage.add("M1", OUTER)
        assert usage.bands_for("M1") == {"0-25", "25-35"}
        assert usage.bands_for("M2") == frozenset()
        assert usage.codes() == {"M1"}


# --- Selection ---


@pytest.fixture
def relax_pool():
    return [
        _cand("A1", "M1", INNER, 10),
        _cand("A2", "M1", INNER, 20),
        _cand("B1", "M1", OUTER, 30),
        _cand("B2", "M2", OUTER, 28),
    ]


class TestStrictSelection:
    def test_columbus_six_distinct_markets(self, memory_catalog):
        base = memory_catalog.find_city("Columbus", "OH")
        selector = _selector(CandidateSource(memory_catalog), 6, tiers=build_tiers(100))
        result = selector.select(base, Side.PICKUP)

        assert len(result.candidates) == 6
        markets = [c.market_code for c in result.candidates]
        assert len(set(markets)) == 6
        assert "OH_COL" not in markets
        assert result.shortfall_reason is None
        assert not result.relaxed
        for c in result.candidates:
            assert c.band.contains(c.distance)
            assert c.distance <= 50

    def test_inner_band_first(self, memory_catalog):
        base = memory_catalog.find_city("Columbus", "OH")
        result = _selector(CandidateSource(memory_catalog), 6, tiers=build_tiers(100)).select(base, Side.PICKUP)
        assert result.candidates[0].city.name == "Delaware"
        labels = [c.band.label for c in result.candidates]
        assert labels == sorted(labels, key=lambda l: float(l.split("-")[0]))

    def test_stops_once_enough(self, relax_pool):
        source = StubSource(relax_pool)
        result = _selector(source, 1).select(BASE, Side.PICKUP)
        assert [c.city.name for c in result.candidates] == ["A1"]
        assert len(source.calls) == 1

    def test_report_policy_never_relaxes(self, relax_pool):
        source = StubSource(relax_pool)
        result = _selector(source, 4, policy=ShortfallPolicy.REPORT).select(BASE, Side.PICKUP)
        assert [c.city.name for c in result.candidates] == ["A1", "B2"]
        assert result.shortfall_reason == ShortfallReason.INSUFFICIENT_UNIQUE_MARKETS
        assert not result.relaxed
        assert all(not allow for _, _, allow in source.calls)

    def test_never_pad_skips_synthesized_markets(self):
        pool = [_cand("Real", "M1", INNER, 10), _cand("Fake", "OH_FAKE", INNER, 5, synthesized=True)]
        strict = _selector(StubSource(pool), 2, policy=ShortfallPolicy.NEVER_PAD).select(BASE, Side.PICKUP)
        assert [c.city.name for c in strict.candidates] == ["Real"]
        assert strict.shortfall_reason == ShortfallReason.INSUFFICIENT_UNIQUE_MARKETS

        report = _selector(StubSource(pool), 2, policy=ShortfallPolicy.REPORT).select(BASE, Side.PICKUP)
        assert sorted(c.city.name for c in report.candidates) == ["Fake", "Real"]


class TestRelaxation:
    def test_reuse_only_from_different_band(self, relax_pool):
        result = _selector(StubSource(relax_pool), 4).select(BASE, Side.DELIVERY)
        names = [c.city.name for c in result.candidates]
        assert names == ["A1", "B2", "B1"]
        assert result.relaxed
        assert result.shortfall_reason == ShortfallReason.INSUFFICIENT_AFTER_RELAXATION

    def test_relaxed_fetch_allows_base_market(self, relax_pool):
        source = StubSource(relax_pool)
        _selector(source, 4).select(BASE, Side.PICKUP)
        assert (0, 25, True) in source.calls

    def test_no_relaxation_when_satisfied(self, relax_pool):
        result = _selector(StubSource(relax_pool), 2).select(BASE, Side.PICKUP)
        assert not result.relaxed
        assert result.shortfall_reason is None

    def test_base_market_reused_in_relaxation(self, memory_catalog):
        base = memory_catalog.find_city("Columbus", "OH")
        result = _selector(CandidateSource(memory_catalog), 12, tiers=build_tiers(75)).select(base, Side.PICKUP)
        markets = [c.market_code for c in result.candidates]
        assert result.relaxed
        assert "OH_COL" in markets
        keys = [c.key for c in result.candidates]
        assert len(keys) == len(set(keys))


class TestCancellation:
    def test_cancelled_before_fetch(self, relax_pool):
        event = threading.Event()
        event.set()
        with pytest.raises(PairingCancelled):
            _selector(StubSource(relax_pool), 4, cancel_event=event).select(BASE, Side.PICKUP)

    def test_cancelled_mid_selection(self, relax_pool):
        event = threading.Event()

        class CancellingSource(StubSource):
            def fetch_candidates(self, *args, **kwargs):
                event.set()
                return super().fetch_candidates(*args, **kwargs)

        with pytest.raises(PairingCancelled):
            _selector(CancellingSource(relax_pool), 4, cancel_event=event).select(BASE, Side.PICKUP)


# --- Properties ---

_BANDS = [INNER, OUTER]

_pool_strategy = st.lists(
    st.tuples(
        st.sampled_from(["M1", "M2", "M3", "M4", "M5"]),
        st.integers(min_value=0, max_value=1),
        st.floats(min_value=0.5, max_value=1.0),
    ),
    max_size=25,
)


def _pool_from(entries):
    pool = []
    for i, (market, band_idx, frac) in enumerate(entries):
        band = _BANDS[band_idx]
        miles = band.min_miles + frac * (band.max_miles - band.min_miles)
        pool.append(_cand(f"City{i:02d}", market, band, miles))
    return pool


class TestSelectionProperties:
    @given(entries=_pool_strategy, required=st.integers(min_value=1, max_value=8))
    @settings(max_examples=150)
    def test_strict_markets_unique(self, entries, required):
        result = _selector(StubSource(_pool_from(entries)), required, policy=ShortfallPolicy.REPORT).select(
            BASE, Side.PICKUP
        )
        markets = [c.market_code for c in result.candidates]
        assert len(markets) == len(set(markets))
        assert len(result.candidates) <= required
        assert (result.shortfall_reason is None) == (len(result.candidates) == required)

    @given(entries=_pool_strategy, required=st.integers(min_value=1, max_value=8))
    @settings(max_examples=150)
    def test_relaxed_duplicates_differ_in_band(self, entries, required):
        result = _selector(StubSource(_pool_from(entries)), required).select(BASE, Side.PICKUP)
        keys = [c.key for c in result.candidates]
        assert len(keys) == len(set(keys))
        per_market_band = Counter((c.market_code, c.band.label) for c in result.candidates)
        assert all(n == 1 for n in per_market_band.values())
        for c in result.candidates:
            assert c.band.contains(c.distance)
