"""Periodic refresh of ad performance from the Marketing API insights edge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from intent_crawler.analytics.recorder import AnalyticsRecorder
from intent_crawler.crawlers.graph_api import GraphAPIClient, GraphAPIError
from intent_crawler.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

INSIGHT_METRICS = ("impressions", "clicks", "spend", "actions")
CONVERSION_ACTIONS = frozenset({"purchase", "offsite_conversion"})
DATE_PRESET = "last_7_days"


def extract_conversions(actions: Iterable[Any] | None) -> int:
    total = 0
    for action in actions or []:
        if not isinstance(action, dict) or action.get("action_type") not in CONVERSION_ACTIONS:
            continue
        try:
            total += int(float(action.get("value") or 0))
        except (TypeError, ValueError):
            continue
    return total


def performance_from_insights(row: dict[str, Any]) -> dict[str, Any]:
    def _num(key: str, cast: type) -> Any:
        try:
            return cast(float(row.get(key) or 0))
        except (TypeError, ValueError):
            return cast(0)

    return {
        "impressions": _num("impressions", int),
        "clicks": _num("clicks", int),
        "spend": _num("spend", float),
        "conversions": extract_conversions(row.get("actions")),
    }


@dataclass
class RefreshSummary:
    campaigns_seen: int = 0
    campaigns_active: int = 0
    ads_updated: int = 0
    errors: int = 0


class AdPerformanceTracker:
    def __init__(
        self,
        graph: GraphAPIClient,
        *,
        ad_account_id: str,
        recorder: AnalyticsRecorder,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.graph = graph
        self.ad_account_id = ad_account_id.removeprefix("act_")
        self.recorder = recorder
        self.metrics = metrics or MetricsRegistry()

    async def refresh(self) -> RefreshSummary:
        summary = RefreshSummary()
        try:
            async with self.graph.open_client() as client:
                campaigns = await self.graph.get_list(
                    f"act_{self.ad_account_id}/campaigns",
                    {"fields": "id,name,objective,status"},
                    client=client,
                )
                summary.campaigns_seen = len(campaigns)
                for campaign in campaigns:
                    if campaign.get("status") != "ACTIVE" or not campaign.get("id"):
                        continue
                    summary.campaigns_active += 1
                    await self._refresh_campaign(client, str(campaign["id"]), summary)
        except GraphAPIError as exc:
            summary.errors += 1
            logger.warning("Ad performance refresh failed account=%s error=%s", self.ad_account_id, exc.message)
        self.metrics.inc("ads.performance.refreshes")
        logger.info(
            "Ad performance refreshed campaigns=%d active=%d ads=%d errors=%d",
            summary.campaigns_seen,
            summary.campaigns_active,
            summary.ads_updated,
            summary.errors,
        )
        return summary

    async def _refresh_campaign(self, client: Any, campaign_id: str, summary: RefreshSummary) -> None:
        try:
            row = await self._insights(client, campaign_id, "campaign_name,objective")
            if row is not None:
                self.recorder.update_campaign_performance(campaign_id, performance_from_insights(row))
            ads = await self.graph.get_list(f"{campaign_id}/ads", {"fields": "id,name,status"}, client=client)
        except GraphAPIError as exc:
            summary.errors += 1
            logger.warning("Campaign insights failed campaign_id=%s error=%s", campaign_id, exc.message)
            return
        for ad in ads:
            if ad.get("status") != "ACTIVE" or not ad.get("id"):
                continue
            ad_id = str(ad["id"])
            try:
                row = await self._insights(client, ad_id, "ad_name")
            except GraphAPIError as exc:
                summary.errors += 1
                logger.warning("Ad insights failed ad_id=%s error=%s", ad_id, exc.message)
                continue
            if row is not None and self.recorder.update_ad_performance(ad_id, performance_from_insights(row)):
                summary.ads_updated += 1

    async def _insights(self, client: Any, object_id: str, extra_fields: str) -> dict[str, Any] | None:
        rows = await self.graph.get_list(
            f"{object_id}/insights",
            {"fields": ",".join([extra_fields, *INSIGHT_METRICS]), "date_preset": DATE_PRESET},
            client=client,
        )
        return rows[0] if rows else None
