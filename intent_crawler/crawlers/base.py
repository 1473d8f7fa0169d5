"""Platform crawler: watermark-driven polling shared by every platform.

Platform differences live in a :class:`FetchStrategy`; the poll cycle,
ordering, failure isolation and watermark bookkeeping live in
:class:`PlatformCrawler` and are identical for every platform.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from intent_crawler.contract import ContentEvent, ContentKind, Platform, ensure_utc, utc_now
from intent_crawler.errors import FetchError
from intent_crawler.metrics import MetricsRegistry
from intent_crawler.scheduler import IntervalTicker, PollingScheduler, Ticker
from intent_crawler.watermarks import WatermarkStore

logger = logging.getLogger(__name__)

ContentHandler = Callable[[ContentEvent], Awaitable[None]]


@dataclass(slots=True)
class RawItem:
    """One item as returned by a platform fetch, before normalization."""

    external_id: str
    created_at: datetime
    text: str = ""
    author: str = "Unknown"
    url: str = ""
    kind: ContentKind = ContentKind.POST
    parent_id: str | None = None
    has_replies: bool = False
    payload: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.created_at = ensure_utc(self.created_at)


class FetchStrategy(ABC):
    """Per-platform fetch and parse behaviour."""

    name: str = ""
    platform: Platform
    supports_replies: bool = False
    default_interval_seconds: float = 60.0
    timeout_seconds: float = 20.0

    def open_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True)

    @abstractmethod
    async def fetch_since(self, client: httpx.AsyncClient, target: str, watermark: datetime) -> list[RawItem]:
        """Fetch recent items for a target. Raise FetchError on failure."""

    async def fetch_replies(self, client: httpx.AsyncClient, target: str, item: RawItem) -> list[RawItem]:
        """Fetch replies to an item. Raise FetchError on failure."""
        return []


@dataclass
class PollCycleReport:
    platform: str
    started_at: datetime
    events: list[ContentEvent] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    duplicates: int = 0

    @property
    def emitted(self) -> int:
        return len(self.events)


def _ascending(items: Iterable[RawItem]) -> list[RawItem]:
    return sorted(items, key=lambda item: item.created_at)


class PlatformCrawler:
    """Polls a set of targets for one platform and emits ContentEvents."""

    def __init__(
        self,
        strategy: FetchStrategy,
        *,
        name: str | None = None,
        watermarks: WatermarkStore | None = None,
        scheduler: PollingScheduler | None = None,
        ticker: Ticker | None = None,
        interval_seconds: float | None = None,
        clock: Callable[[], datetime] = utc_now,
        metrics: MetricsRegistry | None = None,
        watermark_policy: str = "cycle_start",
        reply_depth: int = 2,
    ) -> None:
        self.strategy = strategy
        self.name = name or strategy.name or strategy.platform.value
        self.watermarks = watermarks or WatermarkStore()
        self.scheduler = scheduler or PollingScheduler()
        interval = interval_seconds if interval_seconds is not None else strategy.default_interval_seconds
        self.ticker = ticker or IntervalTicker(interval)
        self.metrics = metrics or MetricsRegistry()
        self.watermark_policy = watermark_policy
        self.reply_depth = max(0, int(reply_depth))
        self._clock = clock
        self._targets: list[str] = []
        self._handler: ContentHandler | None = None
        self._cycle_lock = asyncio.Lock()
        self._generation = 0
        # Keys emitted from a target whose watermark has not yet moved past them.
        self._pending: dict[str, dict[tuple[str, str], datetime]] = {}

    @property
    def platform(self) -> Platform:
        return self.strategy.platform

    @property
    def targets(self) -> tuple[str, ...]:
        return tuple(self._targets)

    @property
    def running(self) -> bool:
        return self.scheduler.is_scheduled(self.name)

    def add_targets(self, ids: Iterable[str]) -> list[str]:
        added: list[str] = []
        for raw in ids:
            target = str(raw or "").strip()
            if not target or target in self._targets:
                continue
            self._targets.append(target)
            self.watermarks.initialize(self.platform.value, target, self._clock())
            added.append(target)
        if added:
            logger.info("Crawler targets added crawler=%s targets=%s", self.name, ",".join(added))
        return added

    def watermark(self, target: str) -> datetime | None:
        return self.watermarks.get(self.platform.value, target)

    def on_content(self, handler: ContentHandler) -> None:
        self._handler = handler

    async def start(self) -> PollCycleReport:
        self.scheduler.cancel(self.name)
        self._generation += 1
        generation = self._generation
        report = await self.poll_once()
        if generation != self._generation:
            # stop() or another start() arrived during the first cycle.
            return report
        self.scheduler.schedule(self.name, self.ticker, self.poll_once)
        logger.info("Crawler started crawler=%s targets=%d", self.name, len(self._targets))
        return report

    def stop(self) -> None:
        self._generation += 1
        if self.scheduler.cancel(self.name):
            logger.info("Crawler stopped crawler=%s", self.name)

    async def join(self) -> None:
        """Wait for an in-flight cycle to finish after :meth:`stop`."""
        async with self._cycle_lock:
            return

    async def poll_once(self) -> PollCycleReport:
        async with self._cycle_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> PollCycleReport:
        platform = self.platform.value
        cycle_start = self._clock()
        report = PollCycleReport(platform=platform, started_at=cycle_start)
        self.metrics.inc("crawler.poll.cycles")
        targets = list(self._targets)
        if not targets:
            return report

        seen: set[tuple[str, str]] = set()
        advances: dict[str, datetime] = {}
        async with self.strategy.open_client() as client:
            for target in targets:
                watermark = self.watermark(target) or self.watermarks.initialize(platform, target, cycle_start)
                try:
                    newest = await self._poll_target(client, target, watermark, seen, report)
                except FetchError as exc:
                    self._record_failure(report, target, exc.reason)
                    continue
                except Exception as exc:
                    self._record_failure(report, target, f"{type(exc).__name__}: {exc}")
                    continue
                report.succeeded.append(target)
                if self.watermark_policy == "max_item":
                    advances[target] = newest or watermark
                else:
                    advances[target] = cycle_start

        # Advance only once every target in the cycle has been enumerated.
        for target, value in advances.items():
            self._release(target, self.watermarks.advance(platform, target, value))
        logger.debug(
            "Crawler cycle done crawler=%s emitted=%d ok=%d failed=%d",
            self.name,
            report.emitted,
            len(report.succeeded),
            len(report.failed),
        )
        return report

    def _release(self, target: str, watermark: datetime) -> None:
        pending = self._pending.pop(target, None)
        if not pending:
            return
        keep = {key: created_at for key, created_at in pending.items() if created_at > watermark}
        if keep:
            self._pending[target] = keep

    def _record_failure(self, report: PollCycleReport, target: str, reason: str) -> None:
        report.failed[target] = reason
        self.metrics.inc("crawler.fetch.failures")
        logger.warning("Crawler fetch failed crawler=%s target=%s error=%s", self.name, target, reason)

    async def _poll_target(
        self,
        client: httpx.AsyncClient,
        target: str,
        watermark: datetime,
        seen: set[tuple[str, str]],
        report: PollCycleReport,
    ) -> datetime | None:
        items = await self.strategy.fetch_since(client, target, watermark)
        newest: datetime | None = None
        reply_failures: list[str] = []
        for item in _ascending(items):
            if item.created_at > watermark:
                await self._emit(target, item, None, seen, report)
                newest = _later(newest, item.created_at)
            if self.strategy.supports_replies and item.has_replies:
                walked = await self._walk_replies(client, target, item, watermark, 1, seen, report, reply_failures)
                newest = _later(newest, walked)
        if reply_failures:
            # Replies under a new parent were missed; hold the watermark so they are retried.
            raise FetchError(self.platform.value, target, reply_failures[0])
        return newest

    async def _walk_replies(
        self,
        client: httpx.AsyncClient,
        target: str,
        parent: RawItem,
        watermark: datetime,
        depth: int,
        seen: set[tuple[str, str]],
        report: PollCycleReport,
        failures: list[str],
    ) -> datetime | None:
        if depth > self.reply_depth:
            return None
        try:
            replies = await self.strategy.fetch_replies(client, target, parent)
        except Exception as exc:
            reason = exc.reason if isinstance(exc, FetchError) else f"{type(exc).__name__}: {exc}"
            self.metrics.inc("crawler.replies.failed")
            logger.warning(
                "Reply fetch failed crawler=%s target=%s parent=%s error=%s",
                self.name,
                target,
                parent.external_id,
                reason,
            )
            if parent.created_at > watermark:
                failures.append(reason)
            return None
        newest: datetime | None = None
        for reply in _ascending(replies):
            if reply.created_at > watermark:
                await self._emit(target, reply, parent.external_id, seen, report)
                newest = _later(newest, reply.created_at)
            if reply.has_replies:
                walked = await self._walk_replies(client, target, reply, watermark, depth + 1, seen, report, failures)
                newest = _later(newest, walked)
        return newest

    async def _emit(
        self,
        target: str,
        item: RawItem,
        parent_id: str | None,
        seen: set[tuple[str, str]],
        report: PollCycleReport,
    ) -> None:
        key = (self.platform.value, item.external_id)
        if key in seen or key in self._pending.get(target, {}):
            report.duplicates += 1
            self.metrics.inc("crawler.events.duplicate")
            return
        seen.add(key)
        event = ContentEvent(
            platform=self.platform,
            kind=item.kind,
            external_id=item.external_id,
            text=item.text,
            target=target,
            parent_id=item.parent_id or parent_id,
            author=item.author or "Unknown",
            created_at=item.created_at,
            url=item.url,
            raw=item.payload,
        )
        if self._handler is not None:
            await self._handler(event)
        self._pending.setdefault(target, {})[key] = item.created_at
        report.events.append(event)
        self.metrics.inc("crawler.events.emitted")


def _later(current: datetime | None, candidate: datetime | None) -> datetime | None:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current
