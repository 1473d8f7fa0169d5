"""Crawler orchestration and per-event pipeline."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from intent_crawler.ads.builder import AdCampaignBuilder
from intent_crawler.analytics.recorder import AnalyticsRecorder
from intent_crawler.contract import ActionOutcome, ContentEvent, DispatchRecord, IntentVerdict, Platform
from intent_crawler.crawlers.base import PlatformCrawler, PollCycleReport
from intent_crawler.dispatch.dispatcher import ResponseDispatcher, recipient_for, reply_metadata
from intent_crawler.errors import ClassificationError
from intent_crawler.intent.classifier import IntentClassifier
from intent_crawler.intent.generator import ReplyGenerator
from intent_crawler.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

AD_PLATFORMS = frozenset({Platform.FACEBOOK, Platform.FACEBOOK_GROUP})

_STOP = object()


class CrawlerManager:
    """Owns crawlers and feeds their content through classify, reply and ads.

    Each crawler gets its own bounded queue and worker, so a slow classifier
    holds back only that crawler's cycle.
    """

    def __init__(
        self,
        *,
        classifier: IntentClassifier,
        generator: ReplyGenerator,
        dispatcher: ResponseDispatcher,
        recorder: AnalyticsRecorder,
        ad_builder: AdCampaignBuilder | None = None,
        high_value_threshold: float = 70.0,
        queue_size: int = 100,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.classifier = classifier
        self.generator = generator
        self.dispatcher = dispatcher
        self.recorder = recorder
        self.ad_builder = ad_builder
        self.high_value_threshold = float(high_value_threshold)
        self.queue_size = max(1, int(queue_size))
        self.metrics = metrics or MetricsRegistry()
        self.crawlers: dict[str, PlatformCrawler] = {}
        self._queues: dict[str, asyncio.Queue[Any]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._in_flight: set[tuple[str, str]] = set()

    def register(self, crawler: PlatformCrawler) -> None:
        if crawler.name in self.crawlers:
            raise ValueError(f"crawler already registered: {crawler.name}")
        self.crawlers[crawler.name] = crawler
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=self.queue_size)
        self._queues[crawler.name] = queue

        async def _enqueue(event: ContentEvent) -> None:
            await queue.put(event)

        crawler.on_content(_enqueue)

    async def start_all(self) -> dict[str, PollCycleReport | BaseException]:
        for name in self.crawlers:
            self._ensure_worker(name)
        names = list(self.crawlers)
        results = await asyncio.gather(*(self.crawlers[name].start() for name in names), return_exceptions=True)
        outcome: dict[str, PollCycleReport | BaseException] = {}
        for name, result in zip(names, results):
            outcome[name] = result
            if isinstance(result, BaseException):
                logger.error("Crawler start failed crawler=%s error=%s", name, result)
        logger.info("Crawler manager started crawlers=%s", ",".join(sorted(names)))
        return outcome

    async def stop_all(self) -> None:
        for crawler in self.crawlers.values():
            crawler.stop()
        await asyncio.gather(*(crawler.join() for crawler in self.crawlers.values()))
        for name, queue in self._queues.items():
            if name in self._workers:
                await queue.join()
        for name, worker in list(self._workers.items()):
            await self._queues[name].put(_STOP)
            await worker
        self._workers.clear()
        logger.info("Crawler manager stopped")

    def _ensure_worker(self, name: str) -> None:
        worker = self._workers.get(name)
        if worker is not None and not worker.done():
            return
        self._workers[name] = asyncio.create_task(self._worker(name, self._queues[name]), name=f"intent-crawler-worker-{name}")

    async def _worker(self, name: str, queue: asyncio.Queue[Any]) -> None:
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                await self.process_event(item)
            except Exception as exc:
                self.metrics.inc("pipeline.events.failed")
                logger.exception("Event processing failed crawler=%s error=%s", name, exc)
            finally:
                queue.task_done()

    async def process_event(self, event: ContentEvent) -> DispatchRecord | None:
        key = event.key
        if key in self._in_flight:
            self.metrics.inc("pipeline.events.in_flight_dropped")
            logger.debug("Dropping concurrent submission platform=%s id=%s", *key)
            return None
        self._in_flight.add(key)
        try:
            return await self._process(event)
        finally:
            self._in_flight.discard(key)

    async def _process(self, event: ContentEvent) -> DispatchRecord:
        verdict = await self._classify(event)
        self.recorder.log_detection(event.text, verdict, platform=event.platform.value, content_id=event.external_id)
        record = DispatchRecord(event=event, verdict=verdict)
        self.recorder.record_dispatch(record)
        self.metrics.inc("pipeline.events.processed")
        if not verdict.is_high_intent:
            return record

        self.metrics.inc("pipeline.high_intent")
        logger.info(
            "High intent detected platform=%s id=%s score=%s",
            event.platform.value,
            event.external_id,
            verdict.intent_score,
        )
        branches = [self._respond(record)]
        if self._wants_ad(event, verdict):
            branches.append(self._advertise(record))
        await asyncio.gather(*branches)
        return record

    async def _classify(self, event: ContentEvent) -> IntentVerdict:
        try:
            return await self.classifier.classify(event.text)
        except ClassificationError as exc:
            reason = str(exc)
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        self.metrics.inc("pipeline.classification.failures")
        logger.warning("Classification failed platform=%s id=%s error=%s", event.platform.value, event.external_id, reason)
        return IntentVerdict.low_intent()

    def _wants_ad(self, event: ContentEvent, verdict: IntentVerdict) -> bool:
        return (
            self.ad_builder is not None
            and event.platform in AD_PLATFORMS
            and verdict.intent_score > self.high_value_threshold
        )

    async def _respond(self, record: DispatchRecord) -> None:
        event = record.event
        try:
            reply = await self.generator.generate_reply(event.text, event.platform.value, record.verdict)
            delivery_id = await self.dispatcher.send(event.platform, recipient_for(event), reply, reply_metadata(event))
        except Exception as exc:
            self.metrics.inc("pipeline.responses.failed")
            record.resolve_response(ActionOutcome.failure(f"{type(exc).__name__}: {exc}"))
            logger.warning("Reply failed platform=%s id=%s error=%s", event.platform.value, event.external_id, exc)
            return
        record.resolve_response(ActionOutcome.success(delivery_id))
        self.metrics.inc("pipeline.responses.sent")
        self.recorder.log_response(
            platform=event.platform.value,
            content_id=event.external_id,
            delivery_id=delivery_id,
            response_text=reply,
            verdict=record.verdict,
        )

    async def _advertise(self, record: DispatchRecord) -> None:
        if self.ad_builder is None:
            return
        event = record.event
        try:
            result = await self.ad_builder.build(record.verdict, event)
        except Exception as exc:
            record.resolve_ad(ActionOutcome.failure(f"{type(exc).__name__}: {exc}"))
            logger.exception("Ad builder raised platform=%s id=%s", event.platform.value, event.external_id)
            return
        if result.ok and result.ad_id:
            record.resolve_ad(ActionOutcome.success(result.ad_id, created=result.created))
            self.recorder.log_ad_creation(
                platform=event.platform.value,
                content_id=event.external_id,
                ad_id=result.ad_id,
                verdict=record.verdict,
            )
            return
        stage = result.failed_stage.value if result.failed_stage is not None else ""
        record.resolve_ad(ActionOutcome.failure(result.reason or "ad creation failed", stage=stage, created=result.created))

    async def reply_direct(self, platform: Platform, recipient: str, text: str) -> str:
        """Generate and send a reply to an inbound message outside the crawl loop."""
        reply = await self.generator.generate_reply(text, platform.value, None)
        return await self.dispatcher.send(platform, recipient, reply, {"inbound_text": text})
