"""
scheduler.py — Cycle-based adaptive crawl of the root region.

═══════════════════════════════════════════════════════════════════════════
CYCLE STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    ┌─────────┐      ┌──────────┐      ┌─────────┐
    │ Seeding │ ───▶ │ Draining │ ───▶ │ Cooling │ ──┐
    └─────────┘      └──────────┘      └─────────┘   │
         ▲                                           │
         └───────────────────────────────────────────┘

Seeding   clear the work queue, push the root region, note the start time.
Draining  pop a region (LIFO, so the crawl is depth-first), fetch it,
          decide, then act: ignore, push four children, or ingest. An
          optional fixed delay follows each region. Children are drained
          in the same cycle, never deferred to the next one.
Cooling   wait `cooldown - elapsed` if positive, so cycle starts are at
          least `cooldown` apart; a drain that overran starts the next
          cycle immediately.

A region whose fetch fails is skipped for the cycle. The next seeding
covers the same area again, so nothing is retried within a cycle.

Graceful stop: stop() is honoured at the top of every draining step and
wakes any delay or cooldown wait early.
═══════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, Optional

from alertcrawler.core.config import Settings
from alertcrawler.core.logging_config import set_crawl_context
from alertcrawler.crawler.policy import Action, Decision, decide
from alertcrawler.ingestion.feed_client import FeedResult, FetchStatus
from alertcrawler.ingestion.models import AlertRecord
from alertcrawler.spatial.region import Region

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    """Counters for one drain of the work queue."""
    cycle: int
    started_at: float
    regions_processed: int = 0
    subdivided: int = 0
    ingested: int = 0
    ignored: int = 0
    alerts_seen: int = 0
    alerts_stored: int = 0
    duration_s: float = 0.0
    interrupted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "regions_processed": self.regions_processed,
            "subdivided": self.subdivided,
            "ingested": self.ingested,
            "ignored": self.ignored,
            "alerts_seen": self.alerts_seen,
            "alerts_stored": self.alerts_stored,
            "duration_s": round(self.duration_s, 3),
            "interrupted": self.interrupted,
        }


class CrawlScheduler:
    """
    Owns the work queue and drives regions through fetch → decide → act.

    `client` needs an async `fetch(region) -> FeedResult`; `store` needs an
    async `upsert_many(records) -> int`. `clock` and `sleep` are injectable
    so cycles can be driven without real time passing.

    Usage:
        scheduler = CrawlScheduler.from_settings(settings, client, store)
        await scheduler.run_forever()
    """

    def __init__(
        self,
        root: Region,
        client,
        store,
        *,
        capacity: int,
        cooldown_s: float = 600.0,
        delay_ms: float = 0.0,
        max_depth: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        on_decision: Optional[Callable[[Decision], None]] = None,
        on_cycle: Optional[Callable[[CycleStats], None]] = None,
    ):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if cooldown_s < 0 or delay_ms < 0:
            raise ValueError("cooldown and delay must be non-negative")

        self.root = root
        self.client = client
        self.store = store
        self.capacity = capacity
        self.cooldown_s = cooldown_s
        self.delay_ms = delay_ms
        self.max_depth = max_depth

        self._clock = clock
        self._sleep = sleep or self._wait_or_stop
        self._on_decision = on_decision
        self._on_cycle = on_cycle

        self._queue: Deque[Region] = deque()
        self._stop_event = asyncio.Event()
        self._cycle = 0

    @classmethod
    def from_settings(cls, settings: Settings, client, store, **kwargs: Any) -> "CrawlScheduler":
        root = Region(
            top=settings.AREA_TOP,
            bottom=settings.AREA_BOTTOM,
            left=settings.AREA_LEFT,
            right=settings.AREA_RIGHT,
        )
        return cls(
            root,
            client,
            store,
            capacity=settings.MAX_ALERTS,
            cooldown_s=settings.QUERY_COOLDOWN,
            delay_ms=settings.QUERY_DELAY,
            max_depth=settings.MAX_SUBDIVISION_DEPTH,
            **kwargs,
        )

    # ── Control ──

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the crawl to finish at the next interrupt point."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()

    async def _wait_or_stop(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ── Cycle ──

    async def run_forever(self, max_cycles: Optional[int] = None) -> int:
        """
        Repeat cycles until stopped (or `max_cycles` have run).

        Returns the number of cycles run.
        """
        cycles = 0
        while not self.stop_requested:
            stats = await self.run_cycle()
            cycles += 1

            if max_cycles is not None and cycles >= max_cycles:
                break
            if self.stop_requested:
                break

            elapsed = self._clock() - stats.started_at
            remaining = self.cooldown_s - elapsed
            if remaining > 0:
                logger.info("Cycle %d done; next cycle in %.1fs", stats.cycle, remaining)
                await self._sleep(remaining)
            else:
                logger.info(
                    "Cycle %d took %.1fs (cooldown %.1fs); starting next cycle now",
                    stats.cycle, elapsed, self.cooldown_s,
                )

        logger.info("Crawler stopped after %d cycle(s)", cycles)
        return cycles

    async def run_cycle(self) -> CycleStats:
        """Seed the queue with the root region and drain it."""
        self._cycle += 1
        set_crawl_context(cycle=self._cycle)

        stats = CycleStats(cycle=self._cycle, started_at=self._clock())
        self._queue.clear()
        self._queue.append(self.root)
        logger.info("Cycle %d started for %s", self._cycle, self.root)

        while self._queue:
            if self.stop_requested:
                stats.interrupted = True
                logger.info("Cycle %d interrupted with %d region(s) queued", self._cycle, len(self._queue))
                break

            region = self._queue.pop()
            await self.process_region(region, stats)

            if self.delay_ms > 0 and self._queue:
                await self._sleep(self.delay_ms / 1000.0)

        stats.duration_s = self._clock() - stats.started_at
        logger.info(
            "Cycle %d finished: %d regions, %d subdivided, %d ingested, %d skipped, "
            "%d alerts seen, %d new",
            stats.cycle, stats.regions_processed, stats.subdivided, stats.ingested,
            stats.ignored, stats.alerts_seen, stats.alerts_stored,
            extra={"duration_ms": int(stats.duration_s * 1000), "stored_count": stats.alerts_stored},
        )

        if self._on_cycle:
            self._on_cycle(stats)
        return stats

    async def process_region(self, region: Region, stats: CycleStats) -> Decision:
        """Fetch one region, decide, and act on the decision."""
        result: FeedResult = await self.client.fetch(region)
        decision = decide(region, result, self.capacity, self.max_depth)
        stats.regions_processed += 1

        logger.info(
            "Queue length: %d. Data retrieved for latitude %s - %s, longitude %s - %s",
            len(self._queue), region.top, region.bottom, region.left, region.right,
            extra={
                "top": region.top, "bottom": region.bottom,
                "left": region.left, "right": region.right,
                "depth": region.depth, "queue_length": len(self._queue),
                "alert_count": result.alert_count,
                "duration_ms": result.fetch_duration_ms,
            },
        )

        if decision.action is Action.IGNORE:
            stats.ignored += 1
            level = logging.INFO if result.status is FetchStatus.EMPTY else logging.WARNING
            logger.log(level, "Skipping %s: %s", region, decision.reason)

        elif decision.action is Action.SUBDIVIDE:
            stats.subdivided += 1
            stats.alerts_seen += result.alert_count
            self._queue.extend(decision.children)
            logger.debug(
                "%d alerts >= capacity %d; split %s into %d",
                result.alert_count, self.capacity, region, len(decision.children),
            )

        else:
            stats.ingested += 1
            stats.alerts_seen += len(decision.alerts)
            stats.alerts_stored += await self._ingest(decision.alerts)

        if self._on_decision:
            self._on_decision(decision)
        return decision

    async def _ingest(self, alerts: Iterable[AlertRecord]) -> int:
        alerts = list(alerts)
        if not alerts:
            return 0
        return await self.store.upsert_many(alerts)
