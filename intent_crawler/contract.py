"""Content, verdict and dispatch record models."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator


class Platform(str, Enum):
    REDDIT = "reddit"
    DISCORD = "discord"
    FACEBOOK = "facebook"
    FACEBOOK_GROUP = "facebook_group"
    # Reply-only channel: inbound messages arrive through the webhook, never a crawler.
    WHATSAPP = "whatsapp"


class ContentKind(str, Enum):
    POST = "post"
    COMMENT = "comment"
    GROUP_POST = "group_post"
    GROUP_COMMENT = "group_comment"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ContentEvent(BaseModel):
    """One discovered post or comment, normalized across platforms."""

    model_config = ConfigDict(frozen=True)

    platform: Platform = Field(..., description="Source platform")
    kind: ContentKind = Field(..., description="Post or comment flavour")
    external_id: str = Field(..., min_length=1, description="Platform-native id, unique within platform")
    text: str = Field(default="", description="Plain text body")
    target: str = Field(..., description="Subreddit, channel, page or group the item was found in")
    parent_id: str | None = Field(None, description="Parent item id for comments")
    author: str = Field(default="Unknown")
    created_at: datetime = Field(..., description="Source-reported creation time (UTC)")
    url: str = Field(default="")
    raw: dict[str, Any] = Field(default_factory=dict, description="Opaque platform payload")

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def key(self) -> tuple[str, str]:
        return self.platform.value, self.external_id


class IntentVerdict(BaseModel):
    """Structured classifier output describing purchase intent."""

    is_high_intent: bool = Field(..., alias="isHighIntent")
    intent_score: float = Field(..., ge=0, le=100, alias="intentScore")
    topics: list[str] = Field(default_factory=list)
    relevant_products: list[str] = Field(default_factory=list, alias="relevantProducts")
    urgency: Urgency = Urgency.LOW
    reasoning: str = ""

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("urgency", mode="before")
    @classmethod
    def _lower_urgency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def low_intent(cls, reason: str = "Error analyzing intent") -> IntentVerdict:
        return cls(
            is_high_intent=False,
            intent_score=0,
            topics=[],
            relevant_products=[],
            urgency=Urgency.LOW,
            reasoning=reason,
        )

    @property
    def first_topic(self) -> str | None:
        return self.topics[0] if self.topics else None

    @property
    def first_product(self) -> str | None:
        return self.relevant_products[0] if self.relevant_products else None


class ActionOutcome(BaseModel):
    """Result of one downstream action: an external id or a failure reason."""

    ok: bool
    external_id: str | None = None
    error: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def success(cls, external_id: str, **detail: Any) -> ActionOutcome:
        return cls(ok=True, external_id=external_id, detail=detail)

    @classmethod
    def failure(cls, error: str, **detail: Any) -> ActionOutcome:
        return cls(ok=False, error=error, detail=detail)


class DispatchRecord(BaseModel):
    """Links an event, its verdict and the outcome of each downstream action.

    Each outcome is written exactly once; a second write raises ``ValueError``.
    """

    record_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event: ContentEvent
    verdict: IntentVerdict
    created_at: datetime = Field(default_factory=utc_now)
    response: ActionOutcome | None = None
    ad: ActionOutcome | None = None

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def resolve_response(self, outcome: ActionOutcome) -> None:
        with self._lock:
            if self.response is not None:
                raise ValueError(f"response already resolved for record {self.record_id}")
            self.response = outcome

    def resolve_ad(self, outcome: ActionOutcome) -> None:
        with self._lock:
            if self.ad is not None:
                raise ValueError(f"ad outcome already resolved for record {self.record_id}")
            self.ad = outcome
