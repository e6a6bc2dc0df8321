"""
Tests for the crawl scheduler.

The feed is replaced by in-process fakes and time by a manual clock, so
cycles, delays and cooldowns run instantly.

Covers:
    • Worked scenarios (subdivide-then-ingest, feed error)
    • Depth-first draining within one cycle; failures skip only their region
    • Termination against a density-limited feed, and the depth guard
    • Cooldown floor between cycle starts; inter-request delay
    • Graceful stop (mid-drain and during a cooldown wait)
"""

from __future__ import annotations

import asyncio
import random
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import pytest
import pytest_asyncio

from alertcrawler.core.config import Settings
from alertcrawler.crawler.policy import Action, Decision
from alertcrawler.crawler.scheduler import CrawlScheduler, CycleStats
from alertcrawler.ingestion.feed_client import FeedResult, FetchStatus
from alertcrawler.ingestion.models import AlertRecord
from alertcrawler.spatial.region import Region
from alertcrawler.storage.alert_store import AlertStore


ROOT = Region(top=10.0, bottom=0.0, left=0.0, right=10.0)


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════

class ManualClock:
    """Monotonic clock advanced only by the test."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeFeed:
    """Answers each region via `responder`; optionally costs clock time per request."""

    def __init__(self, responder: Callable[[Region], FeedResult],
                 clock: ManualClock = None, cost_s: float = 0.0):
        self.responder = responder
        self.clock = clock
        self.cost_s = cost_s
        self.calls: List[Region] = []

    async def fetch(self, region: Region) -> FeedResult:
        self.calls.append(region)
        if self.clock is not None:
            self.clock.now += self.cost_s
        return self.responder(region)


class MemoryStore:
    """Dict-backed insert-if-absent store."""

    def __init__(self) -> None:
        self.rows: Dict[str, AlertRecord] = {}
        self.batches = 0

    async def upsert_many(self, records) -> int:
        self.batches += 1
        new = 0
        for r in records:
            if r.uuid not in self.rows:
                self.rows[r.uuid] = r
                new += 1
        return new


def _alerts(prefix: str, n: int, lat: float = 5.0, lon: float = 5.0) -> List[AlertRecord]:
    return [
        AlertRecord(uuid=f"{prefix}-{i}", type="JAM", pub_millis=i, latitude=lat, longitude=lon)
        for i in range(n)
    ]


def _ok(region: Region, alerts: List[AlertRecord]) -> FeedResult:
    return FeedResult(status=FetchStatus.ALERTS, region=region, alerts=alerts)


def _density_feed(points: List[Tuple[float, float]], capacity: int) -> Callable[[Region], FeedResult]:
    """Feed that returns min(points inside, capacity) alerts, like a truncating API."""
    records = [
        AlertRecord(uuid=f"p{i}", type="HAZARD", pub_millis=i, latitude=lat, longitude=lon)
        for i, (lat, lon) in enumerate(points)
    ]

    def responder(region: Region) -> FeedResult:
        inside = [r for r in records if region.contains(r.latitude, r.longitude)]
        return _ok(region, inside[:capacity])

    return responder


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path):
    store = AlertStore.from_url(f"sqlite+aiosqlite:///{(tmp_path / 'crawl.db').as_posix()}")
    await store.init_schema()
    yield store
    await store.close()


# ═══════════════════════════════════════════════════════════════════════════
# Scenarios
# ═══════════════════════════════════════════════════════════════════════════

class TestScenarios:
    @pytest.mark.asyncio
    async def test_root_subdivides_then_quadrants_ingest(self, sqlite_store):
        """Root returns 7 ≥ 5 → four 5×5 quadrants, each returns 2 → 8 rows."""
        quadrants = ROOT.subdivide()

        def responder(region: Region) -> FeedResult:
            if region == ROOT:
                return _ok(region, _alerts("root", 7))
            index = quadrants.index(region)
            return _ok(region, _alerts(f"q{index}", 2))

        decisions: List[Decision] = []
        feed = FakeFeed(responder)
        scheduler = CrawlScheduler(
            ROOT, feed, sqlite_store, capacity=5,
            sleep=ManualClock().sleep, on_decision=decisions.append,
        )

        stats = await scheduler.run_cycle()

        actions = [d.action for d in decisions]
        assert actions.count(Action.SUBDIVIDE) == 1
        assert actions.count(Action.INGEST) == 4
        assert decisions[0].children == quadrants
        assert all(c.height == 5.0 and c.width == 5.0 for c in decisions[0].children)
        assert set(feed.calls[1:]) == set(quadrants)
        assert await sqlite_store.count() == 8
        assert stats.alerts_stored == 8
        assert stats.regions_processed == 5
        assert scheduler.queue_length == 0

    @pytest.mark.asyncio
    async def test_feed_error_is_ignored(self):
        decisions: List[Decision] = []
        store = MemoryStore()
        feed = FakeFeed(lambda r: FeedResult(FetchStatus.FEED_ERROR, r, error_message="rate limited"))
        scheduler = CrawlScheduler(ROOT, feed, store, capacity=5, on_decision=decisions.append)

        stats = await scheduler.run_cycle()

        assert [d.action for d in decisions] == [Action.IGNORE]
        assert store.rows == {}
        assert store.batches == 0
        assert scheduler.queue_length == 0
        assert stats.ignored == 1

    @pytest.mark.asyncio
    async def test_failed_quadrant_does_not_stop_the_rest(self):
        quadrants = ROOT.subdivide()
        failing = quadrants[1]

        def responder(region: Region) -> FeedResult:
            if region == ROOT:
                return _ok(region, _alerts("root", 5))
            if region == failing:
                return FeedResult(FetchStatus.TRANSPORT_FAILURE, region, error_message="HTTP 503")
            return _ok(region, _alerts(f"q{quadrants.index(region)}", 3))

        store = MemoryStore()
        scheduler = CrawlScheduler(ROOT, FakeFeed(responder), store, capacity=5)
        stats = await scheduler.run_cycle()

        assert stats.regions_processed == 5
        assert stats.ignored == 1
        assert stats.ingested == 3
        assert len(store.rows) == 9

    @pytest.mark.asyncio
    async def test_empty_response_skipped(self):
        store = MemoryStore()
        scheduler = CrawlScheduler(
            ROOT, FakeFeed(lambda r: FeedResult(FetchStatus.EMPTY, r)), store, capacity=5,
        )
        stats = await scheduler.run_cycle()
        assert stats.ignored == 1
        assert store.rows == {}


# ═══════════════════════════════════════════════════════════════════════════
# Draining discipline
# ═══════════════════════════════════════════════════════════════════════════

class TestDraining:
    @pytest.mark.asyncio
    async def test_depth_first_order(self):
        """Children of the last-pushed quadrant are visited before its siblings."""
        tl, tr, bl, br = ROOT.subdivide()

        def responder(region: Region) -> FeedResult:
            saturated = region in (ROOT, br)
            return _ok(region, _alerts(str(region), 5 if saturated else 0))

        feed = FakeFeed(responder)
        await CrawlScheduler(ROOT, feed, MemoryStore(), capacity=5).run_cycle()

        assert feed.calls[0] == ROOT
        assert feed.calls[1] == br
        assert set(feed.calls[2:6]) == set(br.subdivide())
        assert set(feed.calls[6:]) == {tl, tr, bl}

    @pytest.mark.asyncio
    async def test_each_region_processed_once_per_cycle(self):
        rng = random.Random(7)
        points = [(rng.uniform(0, 10), rng.uniform(0, 10)) for _ in range(60)]
        feed = FakeFeed(_density_feed(points, capacity=8))
        await CrawlScheduler(ROOT, feed, MemoryStore(), capacity=8).run_cycle()
        assert len(feed.calls) == len(set(feed.calls))

    @pytest.mark.asyncio
    async def test_each_cycle_reseeds_root(self):
        clock = ManualClock()
        feed = FakeFeed(lambda r: _ok(r, []))
        scheduler = CrawlScheduler(
            ROOT, feed, MemoryStore(), capacity=5, cooldown_s=60,
            clock=clock, sleep=clock.sleep,
        )
        assert await scheduler.run_forever(max_cycles=3) == 3
        assert feed.calls == [ROOT, ROOT, ROOT]


# ═══════════════════════════════════════════════════════════════════════════
# Termination
# ═══════════════════════════════════════════════════════════════════════════

class TestTermination:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("capacity", [2, 3, 5, 20])
    async def test_density_limited_feed_terminates_and_collects_everything(self, capacity):
        rng = random.Random(capacity)
        points = [(rng.uniform(0, 10), rng.uniform(0, 10)) for _ in range(150)]
        store = MemoryStore()
        feed = FakeFeed(_density_feed(points, capacity))

        stats = await CrawlScheduler(ROOT, feed, store, capacity=capacity, max_depth=30).run_cycle()

        assert len(store.rows) == len(points)
        assert stats.regions_processed == len(feed.calls)
        assert stats.regions_processed < 10_000

    @pytest.mark.asyncio
    async def test_always_saturated_feed_stops_at_depth_limit(self):
        feed = FakeFeed(lambda r: _ok(r, _alerts(str(r), 5)))
        decisions: List[Decision] = []
        scheduler = CrawlScheduler(
            ROOT, feed, MemoryStore(), capacity=5, max_depth=3, on_decision=decisions.append,
        )
        stats = await scheduler.run_cycle()

        assert stats.regions_processed == 1 + 4 + 16 + 64
        assert stats.subdivided == 1 + 4 + 16
        assert stats.ingested == 64
        assert all(d.truncated for d in decisions if d.action is Action.INGEST)
        assert max(r.depth for r in feed.calls) == 3


# ═══════════════════════════════════════════════════════════════════════════
# Timing
# ═══════════════════════════════════════════════════════════════════════════

class TestCooldown:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("cooldown, request_cost, expected_gap", [
        (600.0, 10.0, 600.0),   # fast drain: wait out the remainder
        (5.0, 10.0, 10.0),      # slow drain: next cycle immediately
        (10.0, 10.0, 10.0),     # exactly on budget
        (0.0, 3.0, 3.0),        # no cooldown
    ])
    async def test_gap_between_cycle_starts(self, cooldown, request_cost, expected_gap):
        clock = ManualClock()
        starts: List[float] = []
        feed = FakeFeed(lambda r: _ok(r, []), clock=clock, cost_s=request_cost)
        scheduler = CrawlScheduler(
            ROOT, feed, MemoryStore(), capacity=5, cooldown_s=cooldown,
            clock=clock, sleep=clock.sleep,
            on_cycle=lambda s: starts.append(s.started_at),
        )

        await scheduler.run_forever(max_cycles=4)

        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert gaps == pytest.approx([expected_gap] * 3)
        assert gaps == pytest.approx([max(cooldown, request_cost)] * 3)

    @pytest.mark.asyncio
    async def test_cooldown_counts_drain_time(self):
        clock = ManualClock()
        feed = FakeFeed(lambda r: _ok(r, []), clock=clock, cost_s=45.0)
        scheduler = CrawlScheduler(
            ROOT, feed, MemoryStore(), capacity=5, cooldown_s=600,
            clock=clock, sleep=clock.sleep,
        )
        await scheduler.run_forever(max_cycles=2)
        assert clock.sleeps == [pytest.approx(555.0)]


class TestRequestDelay:
    @pytest.mark.asyncio
    async def test_delay_between_regions(self):
        clock = ManualClock()
        feed = FakeFeed(lambda r: _ok(r, _alerts("x", 5 if r == ROOT else 0)))
        scheduler = CrawlScheduler(
            ROOT, feed, MemoryStore(), capacity=5, delay_ms=250,
            clock=clock, sleep=clock.sleep,
        )
        stats = await scheduler.run_cycle()

        # five regions, a pause before each of the four that follow the root
        assert stats.regions_processed == 5
        assert clock.sleeps == [0.25] * 4

    @pytest.mark.asyncio
    async def test_no_delay_by_default(self):
        clock = ManualClock()
        feed = FakeFeed(lambda r: _ok(r, _alerts("x", 5 if r == ROOT else 0)))
        await CrawlScheduler(ROOT, feed, MemoryStore(), capacity=5, sleep=clock.sleep).run_cycle()
        assert clock.sleeps == []


# ═══════════════════════════════════════════════════════════════════════════
# Stopping
# ═══════════════════════════════════════════════════════════════════════════

class TestStop:
    @pytest.mark.asyncio
    async def test_stop_mid_drain(self):
        feed = FakeFeed(lambda r: _ok(r, _alerts("x", 5 if r == ROOT else 0)))
        scheduler = CrawlScheduler(ROOT, feed, MemoryStore(), capacity=5)
        scheduler._on_decision = lambda d: scheduler.stop()

        cycles = await scheduler.run_forever()

        assert cycles == 1
        assert feed.calls == [ROOT]
        assert scheduler.queue_length == 4
        assert scheduler.stop_requested

    @pytest.mark.asyncio
    async def test_stop_wakes_cooldown_wait(self):
        stats: List[CycleStats] = []
        feed = FakeFeed(lambda r: _ok(r, []))
        scheduler = CrawlScheduler(
            ROOT, feed, MemoryStore(), capacity=5, cooldown_s=3600, on_cycle=stats.append,
        )

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)
        scheduler.stop()
        cycles = await asyncio.wait_for(task, timeout=2.0)

        assert cycles == 1
        assert len(stats) == 1
        assert not stats[0].interrupted


# ═══════════════════════════════════════════════════════════════════════════
# Construction
# ═══════════════════════════════════════════════════════════════════════════

class TestConstruction:
    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            AREA_TOP=10.0, AREA_BOTTOM=0.0, AREA_LEFT=0.0, AREA_RIGHT=10.0,
            MAX_ALERTS=50, QUERY_COOLDOWN=120, QUERY_DELAY=500, MAX_SUBDIVISION_DEPTH=8,
        )
        scheduler = CrawlScheduler.from_settings(settings, FakeFeed(lambda r: _ok(r, [])), MemoryStore())
        assert scheduler.root == ROOT
        assert scheduler.capacity == 50
        assert scheduler.cooldown_s == 120
        assert scheduler.delay_ms == 500
        assert scheduler.max_depth == 8

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            CrawlScheduler(ROOT, FakeFeed(lambda r: _ok(r, [])), MemoryStore(), capacity=0)

    def test_stats_to_dict(self):
        stats = CycleStats(cycle=2, started_at=0.0, regions_processed=5, duration_s=1.23456)
        d = stats.to_dict()
        assert d["cycle"] == 2
        assert d["regions_processed"] == 5
        assert d["duration_s"] == 1.235
