from __future__ import annotations

from datetime import datetime, timedelta

import httpx

from intent_crawler.contract import ContentEvent, ContentKind, Platform
from intent_crawler.crawlers.base import FetchStrategy, PlatformCrawler, RawItem
from intent_crawler.errors import FetchError
from intent_crawler.metrics import MetricsRegistry
from intent_crawler.scheduler import ManualTicker, PollingScheduler
from intent_crawler.watermarks import WatermarkStore


class _FakeStrategy(FetchStrategy):
    name = "fake"
    platform = Platform.REDDIT
    supports_replies = True

    def __init__(self):
        self.items: dict[str, list[RawItem]] = {}
        self.replies: dict[str, list[RawItem]] = {}
        self.failures: dict[str, Exception] = {}
        self.fetches: list[tuple[str, datetime]] = []
        self.reply_fetches: list[str] = []
        self.reply_failures: dict[str, Exception] = {}

    def open_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

    async def fetch_since(self, client, target, watermark):
        self.fetches.append((target, watermark))
        if target in self.failures:
            raise self.failures[target]
        return list(self.items.get(target, []))

    async def fetch_replies(self, client, target, item):
        self.reply_fetches.append(item.external_id)
        if item.external_id in self.reply_failures:
            raise self.reply_failures[item.external_id]
        return list(self.replies.get(item.external_id, []))


def _crawler(strategy, clock, **kwargs) -> PlatformCrawler:
    return PlatformCrawler(
        strategy,
        watermarks=WatermarkStore(),
        scheduler=PollingScheduler(),
        ticker=ManualTicker(),
        clock=clock,
        metrics=MetricsRegistry(),
        **kwargs,
    )


def _post(external_id: str, created_at: datetime, **kwargs) -> RawItem:
    return RawItem(external_id=external_id, created_at=created_at, text=f"text {external_id}", **kwargs)


def _collector(crawler: PlatformCrawler) -> list[ContentEvent]:
    seen: list[ContentEvent] = []

    async def _handler(event: ContentEvent) -> None:
        seen.append(event)

    crawler.on_content(_handler)
    return seen


def test_add_targets_is_idempotent(clock):
    crawler = _crawler(_FakeStrategy(), clock)
    assert crawler.add_targets(["gadgets", "audio", "gadgets", " ", ""]) == ["gadgets", "audio"]
    initial = crawler.watermark("gadgets")
    assert initial == clock.now

    clock.advance(hours=1)
    assert crawler.add_targets(["gadgets", "audio"]) == []
    assert crawler.targets == ("gadgets", "audio")
    assert crawler.watermark("gadgets") == initial


async def test_only_items_newer_than_watermark_are_emitted(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["gadgets"])
    watermark = clock.now
    strategy.items["gadgets"] = [
        _post("t3_new", watermark + timedelta(seconds=30)),
        _post("t3_old", watermark - timedelta(minutes=5)),
        _post("t3_same", watermark),
    ]
    seen = _collector(crawler)

    clock.advance(minutes=1)
    report = await crawler.poll_once()

    assert [event.external_id for event in seen] == ["t3_new"]
    assert report.emitted == 1
    assert report.succeeded == ["gadgets"]


async def test_watermark_is_monotonic_and_equals_cycle_start(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["gadgets"])
    _collector(crawler)

    starts = []
    for _ in range(3):
        starts.append(clock.advance(minutes=1))
        await crawler.poll_once()
        assert crawler.watermark("gadgets") == starts[-1]
    assert starts == sorted(starts)
    # each fetch saw the previous cycle's start
    assert [wm for _, wm in strategy.fetches[1:]] == starts[:-1]


async def test_fetch_failure_on_one_target_does_not_block_another(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["broken", "healthy"])
    start = clock.now
    strategy.failures["broken"] = FetchError("reddit", "broken", "http_503")
    strategy.items["healthy"] = [_post("t3_ok", start + timedelta(seconds=10))]
    seen = _collector(crawler)

    cycle_start = clock.advance(minutes=1)
    report = await crawler.poll_once()

    assert report.failed == {"broken": "http_503"}
    assert report.succeeded == ["healthy"]
    assert [event.external_id for event in seen] == ["t3_ok"]
    assert crawler.watermark("broken") == start
    assert crawler.watermark("healthy") == cycle_start
    assert crawler.metrics.get("crawler.fetch.failures") == 1


async def test_unexpected_exception_is_isolated_like_fetch_error(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["a", "b"])
    strategy.failures["a"] = KeyError("data")
    _collector(crawler)

    clock.advance(minutes=1)
    report = await crawler.poll_once()
    assert list(report.failed) == ["a"]
    assert report.succeeded == ["b"]


async def test_events_are_emitted_in_ascending_order_with_replies(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["gadgets"])
    wm = clock.now
    strategy.items["gadgets"] = [
        _post("t3_b", wm + timedelta(seconds=20)),
        _post("t3_a", wm + timedelta(seconds=10), has_replies=True),
    ]
    strategy.replies["t3_a"] = [
        _post("t1_late", wm + timedelta(seconds=40), kind=ContentKind.COMMENT),
        _post("t1_early", wm + timedelta(seconds=30), kind=ContentKind.COMMENT),
        _post("t1_stale", wm - timedelta(seconds=30), kind=ContentKind.COMMENT),
    ]
    seen = _collector(crawler)

    clock.advance(minutes=1)
    await crawler.poll_once()

    assert [event.external_id for event in seen] == ["t3_a", "t1_early", "t1_late", "t3_b"]
    assert {event.parent_id for event in seen if event.kind is ContentKind.COMMENT} == {"t3_a"}


async def test_replies_are_fetched_for_old_posts(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["gadgets"])
    wm = clock.now
    strategy.items["gadgets"] = [_post("t3_old", wm - timedelta(hours=1), has_replies=True)]
    strategy.replies["t3_old"] = [_post("t1_fresh", wm + timedelta(seconds=5), kind=ContentKind.COMMENT)]
    seen = _collector(crawler)

    clock.advance(minutes=1)
    await crawler.poll_once()
    assert [event.external_id for event in seen] == ["t1_fresh"]


async def test_reply_failure_on_old_post_does_not_fail_target(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["gadgets"])
    wm = clock.now
    strategy.items["gadgets"] = [
        _post("t3_old", wm - timedelta(hours=2), has_replies=True),
        _post("t3_new", wm + timedelta(seconds=5)),
    ]
    strategy.reply_failures["t3_old"] = FetchError("reddit", "gadgets", "http_429")
    seen = _collector(crawler)

    cycle_start = clock.advance(minutes=1)
    report = await crawler.poll_once()

    assert [event.external_id for event in seen] == ["t3_new"]
    assert report.succeeded == ["gadgets"]
    assert report.failed == {}
    assert crawler.watermark("gadgets") == cycle_start
    assert crawler.metrics.get("crawler.replies.failed") == 1
    assert crawler.metrics.get("crawler.fetch.failures") == 0


async def test_reply_failure_on_new_post_holds_watermark_without_reemitting(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["gadgets"])
    wm = clock.now
    strategy.items["gadgets"] = [
        _post("t3_a", wm + timedelta(seconds=5)),
        _post("t3_b", wm + timedelta(seconds=10), has_replies=True),
        _post("t3_c", wm + timedelta(seconds=15)),
    ]
    strategy.replies["t3_b"] = [_post("t1_b", wm + timedelta(seconds=20), kind=ContentKind.COMMENT)]
    strategy.reply_failures["t3_b"] = FetchError("reddit", "gadgets", "http_429")
    seen = _collector(crawler)

    clock.advance(minutes=1)
    first = await crawler.poll_once()
    assert [event.external_id for event in seen] == ["t3_a", "t3_b", "t3_c"]
    assert first.failed == {"gadgets": "http_429"}
    assert crawler.watermark("gadgets") == wm

    clock.advance(minutes=1)
    second = await crawler.poll_once()
    assert second.emitted == 0
    assert second.duplicates == 3
    assert crawler.watermark("gadgets") == wm

    del strategy.reply_failures["t3_b"]
    recovered_at = clock.advance(minutes=1)
    third = await crawler.poll_once()
    assert [event.external_id for event in third.events] == ["t1_b"]
    assert [event.external_id for event in seen] == ["t3_a", "t3_b", "t3_c", "t1_b"]
    assert crawler.watermark("gadgets") == recovered_at
    assert crawler.metrics.get("crawler.replies.failed") == 2


async def test_nested_replies_respect_depth_limit(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock, reply_depth=2)
    crawler.add_targets(["page"])
    wm = clock.now
    strategy.items["page"] = [_post("p1", wm + timedelta(seconds=1), has_replies=True)]
    strategy.replies["p1"] = [_post("c1", wm + timedelta(seconds=2), kind=ContentKind.COMMENT, has_replies=True)]
    strategy.replies["c1"] = [_post("c2", wm + timedelta(seconds=3), kind=ContentKind.COMMENT, has_replies=True)]
    strategy.replies["c2"] = [_post("c3", wm + timedelta(seconds=4), kind=ContentKind.COMMENT)]
    seen = _collector(crawler)

    clock.advance(minutes=1)
    await crawler.poll_once()
    assert [event.external_id for event in seen] == ["p1", "c1", "c2"]
    assert [event.parent_id for event in seen] == [None, "p1", "c1"]
    assert strategy.reply_fetches == ["p1", "c1"]


async def test_duplicate_ids_in_one_cycle_are_emitted_once(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["a", "b"])
    wm = clock.now
    strategy.items["a"] = [_post("t3_cross", wm + timedelta(seconds=5))]
    strategy.items["b"] = [_post("t3_cross", wm + timedelta(seconds=5)), _post("t3_cross", wm + timedelta(seconds=5))]
    seen = _collector(crawler)

    clock.advance(minutes=1)
    report = await crawler.poll_once()
    assert [event.key for event in seen] == [("reddit", "t3_cross")]
    assert report.duplicates == 2


async def test_max_item_policy_advances_to_newest_item(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock, watermark_policy="max_item")
    crawler.add_targets(["gadgets", "quiet"])
    wm = clock.now
    strategy.items["gadgets"] = [_post("t3_x", wm + timedelta(seconds=7))]
    _collector(crawler)

    clock.advance(minutes=1)
    await crawler.poll_once()
    assert crawler.watermark("gadgets") == wm + timedelta(seconds=7)
    assert crawler.watermark("quiet") == wm


async def test_handler_failure_marks_target_failed(clock):
    strategy = _FakeStrategy()
    crawler = _crawler(strategy, clock)
    crawler.add_targets(["gadgets"])
    wm = clock.now
    strategy.items["gadgets"] = [_post("t3_x", wm + timedelta(seconds=7))]

    async def _handler(event):
        raise RuntimeError("queue closed")

    crawler.on_content(_handler)
    clock.advance(minutes=1)
    report = await crawler.poll_once()
    assert "gadgets" in report.failed
    assert crawler.watermark("gadgets") == wm


async def test_start_runs_first_cycle_then_schedules(clock):
    strategy = _FakeStrategy()
    ticker = ManualTicker()
    crawler = PlatformCrawler(strategy, ticker=ticker, clock=clock)
    crawler.add_targets(["gadgets"])
    _collector(crawler)

    report = await crawler.start()
    assert report.succeeded == ["gadgets"]
    assert crawler.running
    assert len(strategy.fetches) == 1

    clock.advance(minutes=1)
    await ticker.tick()
    assert len(strategy.fetches) == 2

    crawler.stop()
    await crawler.join()
    assert not crawler.running
    await crawler.scheduler.stop()
    assert len(strategy.fetches) == 2


async def test_restart_replaces_previous_schedule(clock):
    strategy = _FakeStrategy()
    crawler = PlatformCrawler(strategy, ticker=ManualTicker(), clock=clock)
    crawler.add_targets(["gadgets"])
    await crawler.start()
    await crawler.start()
    assert crawler.running
    assert len(strategy.fetches) == 2
    crawler.stop()
    await crawler.scheduler.stop()
