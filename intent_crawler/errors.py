"""Error taxonomy for the crawl and dispatch pipeline."""

from __future__ import annotations


class IntentCrawlerError(Exception):
    """Base class for pipeline errors."""


class FetchError(IntentCrawlerError):
    """A fetch for one crawl target failed (network, status, or payload)."""

    def __init__(self, platform: str, target: str, reason: str) -> None:
        super().__init__(f"fetch failed platform={platform} target={target}: {reason}")
        self.platform = platform
        self.target = target
        self.reason = reason


class ClassificationError(IntentCrawlerError):
    """The intent classifier could not produce a verdict."""


class GenerationError(IntentCrawlerError):
    """The reply generator could not produce text."""


class DispatchError(IntentCrawlerError):
    """A reply could not be delivered to the platform."""


class UnsupportedPlatformError(DispatchError, ValueError):
    """No transport is registered for the platform. Caller error, never retried."""


class AdStageError(IntentCrawlerError):
    """One stage of ad provisioning failed."""

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"ad stage {stage} failed: {reason}")
        self.stage = stage
        self.reason = reason
