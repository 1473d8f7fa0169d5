"""Ordered four-stage ad provisioning: creative, campaign, ad set, ad.

A failed stage ends the job in ``FAILED`` with every id created so far.
Earlier resources are never deleted or paused here; orphans are reported in
the result for out-of-band cleanup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from intent_crawler.ads import copy as ad_copy
from intent_crawler.ads.platform import AdPlatform
from intent_crawler.contract import ContentEvent, IntentVerdict, utc_now
from intent_crawler.errors import AdStageError
from intent_crawler.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

DAILY_BUDGET_CENTS = 5000
BID_AMOUNT_CENTS = 500
RUN_WINDOW = timedelta(days=7)


class AdJobState(str, Enum):
    START = "START"
    CREATIVE_CREATED = "CREATIVE_CREATED"
    CAMPAIGN_CREATED = "CAMPAIGN_CREATED"
    ADSET_CREATED = "ADSET_CREATED"
    AD_CREATED = "AD_CREATED"
    FAILED = "FAILED"


class AdStage(str, Enum):
    CREATIVE = "creative"
    CAMPAIGN = "campaign"
    ADSET = "adset"
    AD = "ad"


# stage -> (state required before it, state reached after it)
_TRANSITIONS: dict[AdStage, tuple[AdJobState, AdJobState]] = {
    AdStage.CREATIVE: (AdJobState.START, AdJobState.CREATIVE_CREATED),
    AdStage.CAMPAIGN: (AdJobState.CREATIVE_CREATED, AdJobState.CAMPAIGN_CREATED),
    AdStage.ADSET: (AdJobState.CAMPAIGN_CREATED, AdJobState.ADSET_CREATED),
    AdStage.AD: (AdJobState.ADSET_CREATED, AdJobState.AD_CREATED),
}

_ID_FIELDS: dict[AdStage, str] = {
    AdStage.CREATIVE: "creative_id",
    AdStage.CAMPAIGN: "campaign_id",
    AdStage.ADSET: "ad_set_id",
    AdStage.AD: "ad_id",
}


@dataclass
class AdCreationJob:
    content_key: tuple[str, str]
    state: AdJobState = AdJobState.START
    creative_id: str | None = None
    campaign_id: str | None = None
    ad_set_id: str | None = None
    ad_id: str | None = None
    failed_stage: AdStage | None = None
    reason: str | None = None

    @property
    def terminal(self) -> bool:
        return self.state in (AdJobState.AD_CREATED, AdJobState.FAILED)

    def record(self, stage: AdStage, object_id: str) -> None:
        required, reached = _TRANSITIONS[stage]
        if self.state is not required:
            raise RuntimeError(f"cannot complete stage {stage.value} from state {self.state.value}")
        setattr(self, _ID_FIELDS[stage], object_id)
        self.state = reached

    def fail(self, stage: AdStage, reason: str) -> None:
        if self.terminal:
            raise RuntimeError(f"job already terminal in state {self.state.value}")
        self.failed_stage = stage
        self.reason = reason
        self.state = AdJobState.FAILED

    def created_so_far(self) -> dict[str, str]:
        created: dict[str, str] = {}
        for stage in AdStage:
            value = getattr(self, _ID_FIELDS[stage])
            if value:
                created[_ID_FIELDS[stage]] = value
        return created


@dataclass(frozen=True)
class AdCreationResult:
    ok: bool
    ad_id: str | None
    state: AdJobState
    failed_stage: AdStage | None = None
    reason: str | None = None
    created: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_job(cls, job: AdCreationJob) -> AdCreationResult:
        return cls(
            ok=job.state is AdJobState.AD_CREATED,
            ad_id=job.ad_id,
            state=job.state,
            failed_stage=job.failed_stage,
            reason=job.reason,
            created=job.created_so_far(),
        )


class AdCampaignBuilder:
    def __init__(
        self,
        platform: AdPlatform,
        *,
        page_id: str,
        website_url: str = "https://example.com",
        clock: Callable[[], datetime] = utc_now,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.platform = platform
        self.page_id = page_id
        self.website_url = website_url
        self._clock = clock
        self.metrics = metrics or MetricsRegistry()

    async def build(self, verdict: IntentVerdict, event: ContentEvent) -> AdCreationResult:
        now = self._clock()
        job = AdCreationJob(content_key=event.key)
        topic = verdict.first_topic or "General"
        day = now.strftime("%Y-%m-%d")

        steps: list[tuple[AdStage, Callable[[], Any]]] = [
            (AdStage.CREATIVE, lambda: self.platform.create_creative(self.creative_spec(verdict, day))),
            (AdStage.CAMPAIGN, lambda: self.platform.create_campaign(self.campaign_spec(topic, day))),
            (AdStage.ADSET, lambda: self.platform.create_ad_set(self.ad_set_spec(verdict, topic, job.campaign_id, now))),
            (AdStage.AD, lambda: self.platform.create_ad(self.ad_spec(topic, day, job.ad_set_id, job.creative_id))),
        ]
        for stage, submit in steps:
            try:
                object_id = await self._run_stage(stage, submit)
            except AdStageError as exc:
                job.fail(stage, exc.reason)
                self.metrics.inc("pipeline.ads.failed")
                logger.warning(
                    "Ad creation failed stage=%s content=%s:%s created=%s reason=%s",
                    stage.value,
                    event.platform.value,
                    event.external_id,
                    job.created_so_far(),
                    exc.reason,
                )
                return AdCreationResult.from_job(job)
            job.record(stage, object_id)

        self.metrics.inc("pipeline.ads.created")
        logger.info("Ad created ad_id=%s content=%s:%s", job.ad_id, event.platform.value, event.external_id)
        return AdCreationResult.from_job(job)

    async def _run_stage(self, stage: AdStage, submit: Callable[[], Any]) -> str:
        try:
            object_id = await submit()
        except Exception as exc:
            raise AdStageError(stage.value, f"{type(exc).__name__}: {exc}") from exc
        object_id = str(object_id or "").strip()
        if not object_id:
            raise AdStageError(stage.value, "platform returned no id")
        return object_id

    def creative_spec(self, verdict: IntentVerdict, day: str) -> dict[str, Any]:
        return {
            "name": f"Creative_{verdict.first_topic or 'General'}_{day}",
            "object_story_spec": {
                "page_id": self.page_id,
                "link_data": {
                    "message": ad_copy.build_body(verdict),
                    "link": self.website_url,
                    "name": ad_copy.select_headline(verdict),
                    "image_url": ad_copy.product_image_url(verdict.first_product),
                    "call_to_action": {"type": "LEARN_MORE"},
                },
            },
        }

    def campaign_spec(self, topic: str, day: str) -> dict[str, Any]:
        return {
            "name": f"Auto_Intent_{day}_{topic}",
            "objective": "CONVERSIONS",
            "status": "ACTIVE",
            "special_ad_categories": [],
        }

    def ad_set_spec(self, verdict: IntentVerdict, topic: str, campaign_id: str | None, now: datetime) -> dict[str, Any]:
        return {
            "name": f"AdSet_{topic}_{ad_copy.format_score(verdict.intent_score)}",
            "campaign_id": campaign_id,
            "daily_budget": DAILY_BUDGET_CENTS,
            "targeting": ad_copy.build_targeting(verdict),
            "optimization_goal": "CONVERSIONS",
            "billing_event": "IMPRESSIONS",
            "bid_amount": BID_AMOUNT_CENTS,
            "start_time": now.isoformat(),
            "end_time": (now + RUN_WINDOW).isoformat(),
            "status": "ACTIVE",
        }

    def ad_spec(self, topic: str, day: str, ad_set_id: str | None, creative_id: str | None) -> dict[str, Any]:
        return {
            "name": f"Ad_{topic}_{day}",
            "adset_id": ad_set_id,
            "creative": {"creative_id": creative_id},
            "status": "ACTIVE",
        }
