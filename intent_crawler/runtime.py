"""Wires configuration into crawlers, collaborators and the manager."""

from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta

from intent_crawler.ads.builder import AdCampaignBuilder
from intent_crawler.ads.insights import AdPerformanceTracker
from intent_crawler.ads.platform import MetaAdPlatform
from intent_crawler.analytics.recorder import AnalyticsRecorder
from intent_crawler.config import CrawlerConfig
from intent_crawler.contract import Platform
from intent_crawler.crawlers.base import FetchStrategy, PlatformCrawler
from intent_crawler.crawlers.discord import DiscordStrategy
from intent_crawler.crawlers.facebook import FacebookGroupStrategy, FacebookPageStrategy
from intent_crawler.crawlers.graph_api import GraphAPIClient
from intent_crawler.crawlers.reddit import RedditStrategy
from intent_crawler.dispatch.dispatcher import ResponseDispatcher
from intent_crawler.dispatch.transports import (
    DiscordTransport,
    FacebookTransport,
    RedditTransport,
    Transport,
    WhatsAppTransport,
)
from intent_crawler.intent.anthropic import AnthropicMessagesClient
from intent_crawler.intent.classifier import AnthropicIntentClassifier, IntentClassifier
from intent_crawler.intent.generator import AnthropicReplyGenerator, ReplyGenerator
from intent_crawler.llm_auth import load_env_file, resolve_llm_auth
from intent_crawler.manager import CrawlerManager
from intent_crawler.metrics import MetricsRegistry
from intent_crawler.scheduler import IntervalTicker, PollingScheduler
from intent_crawler.store import source_state as source_state_store
from intent_crawler.watermarks import WatermarkStore

logger = logging.getLogger(__name__)

SOURCE_NAMES = ("reddit", "discord", "facebook_pages", "facebook_groups")

RETENTION_INTERVAL = timedelta(hours=24)


class CrawlerRuntime:
    def __init__(
        self,
        *,
        config: CrawlerConfig,
        metrics: MetricsRegistry,
        conn: sqlite3.Connection | None = None,
        classifier: IntentClassifier | None = None,
        generator: ReplyGenerator | None = None,
    ) -> None:
        self.config = config
        self.metrics = metrics
        self.conn = conn
        self.scheduler = PollingScheduler()
        self.watermarks = WatermarkStore()
        self.recorder = AnalyticsRecorder()
        self.graph = GraphAPIClient(token=config.facebook_token)
        self.tracker: AdPerformanceTracker | None = None
        self._classifier = classifier
        self._generator = generator
        self.manager = self._build_manager()
        self._build_crawlers()

    def _build_manager(self) -> CrawlerManager:
        if self._classifier is None or self._generator is None:
            auth = resolve_llm_auth(load_env_file(self.config.llm_env_file))
            client = AnthropicMessagesClient(auth, model=self.config.llm_model)
            self._classifier = self._classifier or AnthropicIntentClassifier(client)
            self._generator = self._generator or AnthropicReplyGenerator(client)
        ad_builder = None
        if self.config.ads_enabled:
            ad_builder = AdCampaignBuilder(
                MetaAdPlatform(self.graph, ad_account_id=self.config.ad_account_id),
                page_id=self.config.ad_page_id,
                website_url=self.config.website_url,
                metrics=self.metrics,
            )
            self.tracker = AdPerformanceTracker(
                self.graph,
                ad_account_id=self.config.ad_account_id,
                recorder=self.recorder,
                metrics=self.metrics,
            )
        return CrawlerManager(
            classifier=self._classifier,
            generator=self._generator,
            dispatcher=ResponseDispatcher(self._build_transports()),
            recorder=self.recorder,
            ad_builder=ad_builder,
            high_value_threshold=self.config.high_value_threshold,
            queue_size=self.config.queue_size,
            metrics=self.metrics,
        )

    def _build_transports(self) -> dict[Platform, Transport]:
        transports: dict[Platform, Transport] = {
            Platform.REDDIT: RedditTransport(token=self.config.reddit_token, user_agent="IntentCrawler/1.0"),
            Platform.DISCORD: DiscordTransport(token=self.config.discord_token),
            Platform.FACEBOOK: FacebookTransport(self.graph),
            Platform.FACEBOOK_GROUP: FacebookTransport(self.graph),
        }
        if self.config.whatsapp_token and self.config.whatsapp_phone_number_id:
            transports[Platform.WHATSAPP] = WhatsAppTransport(
                token=self.config.whatsapp_token,
                phone_number_id=self.config.whatsapp_phone_number_id,
            )
        return transports

    def _strategy_for(self, name: str) -> FetchStrategy:
        settings = self.config.source(name)
        if name == "reddit":
            return RedditStrategy(token=self.config.reddit_token, timeout_seconds=settings.timeout_seconds)
        if name == "discord":
            return DiscordStrategy(token=self.config.discord_token, timeout_seconds=settings.timeout_seconds)
        if name == "facebook_pages":
            return FacebookPageStrategy(self.graph)
        if name == "facebook_groups":
            return FacebookGroupStrategy(self.graph)
        raise ValueError(f"unknown source: {name}")

    def _build_crawlers(self) -> None:
        if self.conn is not None:
            self.watermarks.set_state_backend(
                lambda source_key, conn=self.conn: source_state_store.get_state(conn, source_key),
                lambda source_key, state, conn=self.conn: source_state_store.set_state(conn, source_key, state),
            )
        policy = self.config.watermark_policy
        for name in SOURCE_NAMES:
            settings = self.config.source(name)
            if not settings.enabled:
                continue
            crawler = PlatformCrawler(
                self._strategy_for(name),
                name=name,
                watermarks=self.watermarks,
                scheduler=self.scheduler,
                interval_seconds=settings.poll_interval_seconds,
                metrics=self.metrics,
                watermark_policy=policy,
                reply_depth=settings.reply_depth,
            )
            crawler.add_targets(settings.targets)
            self.manager.register(crawler)

    async def start(self) -> None:
        await self.manager.start_all()
        if self.tracker is not None:
            self.scheduler.schedule(
                "ad_performance",
                IntervalTicker(self.config.ad_performance_interval_seconds),
                self.tracker.refresh,
            )
            await self.tracker.refresh()
        retention_days = self.config.analytics_retention_days
        self.scheduler.schedule(
            "analytics_retention",
            IntervalTicker(RETENTION_INTERVAL.total_seconds()),
            lambda: self._clear_old_data(retention_days),
        )
        logger.info("Runtime started crawlers=%s ads=%s", ",".join(sorted(self.manager.crawlers)), self.tracker is not None)

    async def _clear_old_data(self, days: int) -> None:
        self.recorder.clear_old_data(days)

    async def stop(self) -> None:
        await self.manager.stop_all()
        await self.scheduler.stop()
