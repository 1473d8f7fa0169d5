"""Discord fetch strategy: recent channel messages over the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from intent_crawler.contract import ContentKind, Platform
from intent_crawler.crawlers.base import FetchStrategy, RawItem
from intent_crawler.errors import FetchError

API_BASE_URL = "https://discord.com/api/v10"


class DiscordStrategy(FetchStrategy):
    """Poll ``/channels/{id}/messages``; replies arrive as messages with a reference."""

    name = "discord"
    platform = Platform.DISCORD
    supports_replies = False
    default_interval_seconds = 120.0

    def __init__(self, *, token: str = "", limit: int = 50, timeout_seconds: float = 20.0) -> None:
        self.token = token.strip()
        self.limit = max(1, min(100, int(limit)))
        self.timeout_seconds = timeout_seconds

    async def fetch_since(self, client: httpx.AsyncClient, target: str, watermark: datetime) -> list[RawItem]:
        if not self.token:
            raise FetchError(self.name, target, "missing_bot_token")
        try:
            resp = await client.get(
                f"{API_BASE_URL}/channels/{target}/messages",
                params={"limit": self.limit},
                headers={"Authorization": f"Bot {self.token}"},
            )
        except httpx.HTTPError as exc:
            raise FetchError(self.name, target, f"http_error:{type(exc).__name__}") from exc
        if resp.status_code == 429:
            raise FetchError(self.name, target, "rate_limited")
        if resp.status_code >= 400:
            raise FetchError(self.name, target, f"http_{resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise FetchError(self.name, target, "malformed_json") from exc
        if not isinstance(payload, list):
            raise FetchError(self.name, target, "malformed_messages")

        items: list[RawItem] = []
        for row in payload:
            if not isinstance(row, dict):
                continue
            item = self._parse_message(target, row)
            if item is not None:
                items.append(item)
        return items

    def _parse_message(self, channel_id: str, row: dict[str, Any]) -> RawItem | None:
        message_id = str(row.get("id") or "").strip()
        timestamp = str(row.get("timestamp") or "").strip()
        if not message_id or not timestamp:
            return None
        try:
            created = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        except ValueError:
            return None
        author = row.get("author") if isinstance(row.get("author"), dict) else {}
        if author.get("bot"):
            return None
        reference = row.get("message_reference") if isinstance(row.get("message_reference"), dict) else {}
        parent_id = str(reference.get("message_id") or "").strip() or None
        guild_id = str(row.get("guild_id") or reference.get("guild_id") or "@me")
        return RawItem(
            external_id=message_id,
            created_at=created,
            text=str(row.get("content") or ""),
            author=str(author.get("username") or "Unknown"),
            url=f"https://discord.com/channels/{guild_id}/{channel_id}/{message_id}",
            kind=ContentKind.COMMENT if parent_id else ContentKind.POST,
            parent_id=parent_id,
            payload=row,
        )
