"""In-memory analytics for detections, replies and ads."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from intent_crawler.contract import DispatchRecord, IntentVerdict, utc_now

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class DetectionEntry:
    text: str
    verdict: IntentVerdict
    platform: str = ""
    content_id: str = ""
    entry_id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class ResponseEntry:
    platform: str
    content_id: str
    delivery_id: str
    response_text: str
    verdict: IntentVerdict
    entry_id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=utc_now)
    engagement: dict[str, Any] | None = None


@dataclass
class AdEntry:
    platform: str
    content_id: str
    ad_id: str
    verdict: IntentVerdict
    entry_id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=utc_now)
    performance: dict[str, Any] | None = None


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _pct(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


class AnalyticsRecorder:
    """Lock-guarded store of pipeline activity.

    Logging methods are fire-and-forget: they never raise, and unknown ids in
    the update methods are ignored.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._detections: list[DetectionEntry] = []
        self._responses: list[ResponseEntry] = []
        self._ads: list[AdEntry] = []
        self._dispatch_records: list[DispatchRecord] = []
        self._campaigns: dict[str, dict[str, Any]] = {}

    def log_detection(self, text: str, verdict: IntentVerdict, *, platform: str = "", content_id: str = "") -> str:
        entry = DetectionEntry(text=text, verdict=verdict, platform=platform, content_id=content_id, timestamp=self._clock())
        with self._lock:
            self._detections.append(entry)
        logger.debug("Detection logged id=%s score=%s", entry.entry_id, verdict.intent_score)
        return entry.entry_id

    def log_response(
        self,
        *,
        platform: str,
        content_id: str,
        delivery_id: str,
        response_text: str,
        verdict: IntentVerdict,
    ) -> str:
        entry = ResponseEntry(
            platform=platform,
            content_id=content_id,
            delivery_id=delivery_id,
            response_text=response_text,
            verdict=verdict,
            timestamp=self._clock(),
        )
        with self._lock:
            self._responses.append(entry)
        logger.info("Response logged id=%s platform=%s delivery_id=%s", entry.entry_id, platform, delivery_id)
        return entry.entry_id

    def log_ad_creation(self, *, platform: str, content_id: str, ad_id: str, verdict: IntentVerdict) -> str:
        entry = AdEntry(platform=platform, content_id=content_id, ad_id=ad_id, verdict=verdict, timestamp=self._clock())
        with self._lock:
            self._ads.append(entry)
        logger.info("Ad creation logged id=%s ad_id=%s", entry.entry_id, ad_id)
        return entry.entry_id

    def record_dispatch(self, record: DispatchRecord) -> None:
        with self._lock:
            self._dispatch_records.append(record)

    def update_engagement(self, response_id: str, engagement: dict[str, Any]) -> bool:
        with self._lock:
            for entry in self._responses:
                if entry.entry_id == response_id:
                    entry.engagement = {**(entry.engagement or {}), **dict(engagement), "updated_at": self._clock()}
                    return True
        logger.debug("Engagement update ignored unknown response_id=%s", response_id)
        return False

    def update_ad_performance(self, ad_id: str, performance: dict[str, Any]) -> bool:
        with self._lock:
            for entry in self._ads:
                if entry.ad_id == ad_id:
                    entry.performance = {**(entry.performance or {}), **dict(performance), "last_updated": self._clock()}
                    return True
        return False

    def update_campaign_performance(self, campaign_id: str, performance: dict[str, Any]) -> None:
        """Campaign-level totals, kept apart from the per-ad entries."""
        with self._lock:
            current = self._campaigns.get(campaign_id, {})
            self._campaigns[campaign_id] = {**current, **dict(performance), "last_updated": self._clock()}

    @property
    def campaign_performance(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {key: dict(value) for key, value in self._campaigns.items()}

    @property
    def dispatch_records(self) -> list[DispatchRecord]:
        with self._lock:
            return list(self._dispatch_records)

    @property
    def responses(self) -> list[ResponseEntry]:
        with self._lock:
            return list(self._responses)

    @property
    def ads(self) -> list[AdEntry]:
        with self._lock:
            return list(self._ads)

    @property
    def detections(self) -> list[DetectionEntry]:
        with self._lock:
            return list(self._detections)

    def get_ad_performance_metrics(self) -> dict[str, Any]:
        with self._lock:
            performances = [entry.performance or {} for entry in self._ads]
            campaigns = len(self._campaigns)
        impressions = sum(_number(p.get("impressions")) for p in performances)
        clicks = sum(_number(p.get("clicks")) for p in performances)
        conversions = sum(_number(p.get("conversions")) for p in performances)
        spend = sum(_number(p.get("spend")) for p in performances)
        return {
            "total_ads": len(performances),
            "campaigns_tracked": campaigns,
            "ads_with_impressions": sum(1 for p in performances if _number(p.get("impressions")) > 0),
            "total_impressions": impressions,
            "total_clicks": clicks,
            "total_conversions": conversions,
            "total_spend": spend,
            "ctr": _pct(clicks, impressions),
            "cvr": _pct(conversions, clicks),
            "cpa": spend / conversions if conversions > 0 else 0.0,
        }

    def get_performance_metrics(self) -> dict[str, Any]:
        with self._lock:
            verdicts = [entry.verdict for entry in self._detections]
            total_responses = len(self._responses)
            engaged = sum(1 for entry in self._responses if entry.engagement)
        total = len(verdicts)
        high = sum(1 for verdict in verdicts if verdict.is_high_intent)
        return {
            "total_detections": total,
            "high_intent_count": high,
            "high_intent_percentage": _pct(high, total),
            "avg_intent_score": sum(v.intent_score for v in verdicts) / total if total else 0.0,
            "total_responses": total_responses,
            "engagement_rate": _pct(engaged, total_responses),
            "ads": self.get_ad_performance_metrics(),
        }

    def clear_old_data(self, days: int = 30) -> int:
        """Drop detections, responses and ads older than ``days``; return how many went."""
        cutoff = self._clock() - timedelta(days=max(0, days))
        with self._lock:
            before = len(self._detections) + len(self._responses) + len(self._ads)
            self._detections = [e for e in self._detections if e.timestamp >= cutoff]
            self._responses = [e for e in self._responses if e.timestamp >= cutoff]
            self._ads = [e for e in self._ads if e.timestamp >= cutoff]
            removed = before - (len(self._detections) + len(self._responses) + len(self._ads))
        logger.info("Analytics retention applied days=%d removed=%d", days, removed)
        return removed
