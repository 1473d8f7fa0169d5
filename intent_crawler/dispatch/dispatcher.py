"""Reply dispatch routed by platform."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from intent_crawler.contract import ContentEvent, Platform
from intent_crawler.dispatch.transports import Transport
from intent_crawler.errors import DispatchError, UnsupportedPlatformError

logger = logging.getLogger(__name__)


def recipient_for(event: ContentEvent) -> str:
    """Address a reply to the item it answers."""
    if event.platform is Platform.DISCORD:
        return event.target
    # reddit fullnames and Graph object ids are both the item's own id
    return event.external_id


def reply_metadata(event: ContentEvent) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "content_id": event.external_id,
        "kind": event.kind.value,
        "target": event.target,
        "url": event.url,
    }
    if event.platform is Platform.DISCORD:
        metadata["message_id"] = event.external_id
    return metadata


class ResponseDispatcher:
    def __init__(self, transports: Mapping[Platform, Transport]) -> None:
        self._transports = dict(transports)

    @property
    def platforms(self) -> frozenset[Platform]:
        return frozenset(self._transports)

    def transport_for(self, platform: Platform | str) -> Transport:
        try:
            key = Platform(platform)
        except ValueError as exc:
            raise UnsupportedPlatformError(f"unknown platform: {platform}") from exc
        transport = self._transports.get(key)
        if transport is None:
            raise UnsupportedPlatformError(f"no transport registered for platform: {key.value}")
        return transport

    async def send(self, platform: Platform | str, recipient: str, text: str, metadata: dict[str, Any] | None = None) -> str:
        transport = self.transport_for(platform)
        if not recipient:
            raise ValueError("recipient is required")
        try:
            delivery_id = await transport.send(recipient, text, dict(metadata or {}))
        except DispatchError:
            raise
        except Exception as exc:
            raise DispatchError(f"{type(exc).__name__}: {exc}") from exc
        logger.info("Reply dispatched platform=%s recipient=%s delivery_id=%s", Platform(platform).value, recipient, delivery_id)
        return delivery_id
