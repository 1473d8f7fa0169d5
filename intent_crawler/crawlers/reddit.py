"""Reddit fetch strategy: subreddit new-post feeds plus comment trees."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from intent_crawler.contract import ContentKind, Platform
from intent_crawler.crawlers.base import FetchStrategy, RawItem
from intent_crawler.errors import FetchError

logger = logging.getLogger(__name__)

OAUTH_BASE_URL = "https://oauth.reddit.com"
PUBLIC_BASE_URL = "https://www.reddit.com"
DEFAULT_USER_AGENT = "IntentCrawler/1.0 (sales intent monitor)"


class RedditStrategy(FetchStrategy):
    """Poll ``/r/{subreddit}/new.json`` and walk each post's comment tree."""

    name = "reddit"
    platform = Platform.REDDIT
    supports_replies = True
    default_interval_seconds = 60.0

    def __init__(
        self,
        *,
        token: str = "",
        limit: int = 25,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = 20.0,
    ) -> None:
        self.token = token.strip()
        self.limit = max(5, min(100, int(limit)))
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds

    @property
    def base_url(self) -> str:
        return OAUTH_BASE_URL if self.token else PUBLIC_BASE_URL

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_json(self, client: httpx.AsyncClient, target: str, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            resp = await client.get(f"{self.base_url}{path}", params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            raise FetchError(self.name, target, f"http_error:{type(exc).__name__}") from exc
        if resp.status_code >= 400:
            raise FetchError(self.name, target, f"http_{resp.status_code}")
        try:
            return resp.json()
        except ValueError as exc:
            raise FetchError(self.name, target, "malformed_json") from exc

    async def fetch_since(self, client: httpx.AsyncClient, target: str, watermark: datetime) -> list[RawItem]:
        # The listing has no server-side "since" filter; the crawler filters by watermark.
        payload = await self._get_json(client, target, f"/r/{target}/new.json", {"limit": self.limit})
        data = payload.get("data") if isinstance(payload, dict) else None
        children = data.get("children") if isinstance(data, dict) else None
        if not isinstance(children, list):
            raise FetchError(self.name, target, "malformed_listing")
        items: list[RawItem] = []
        for child in children:
            row = child.get("data") if isinstance(child, dict) else None
            if not isinstance(row, dict):
                continue
            item = self._parse_post(row)
            if item is not None:
                items.append(item)
        return items

    async def fetch_replies(self, client: httpx.AsyncClient, target: str, item: RawItem) -> list[RawItem]:
        post_id = str(item.payload.get("id") or item.external_id.removeprefix("t3_"))
        payload = await self._get_json(client, target, f"/comments/{post_id}.json")
        # Reddit answers with [post listing, comment listing].
        if not isinstance(payload, list) or len(payload) < 2:
            raise FetchError(self.name, target, "malformed_comments")
        listing = payload[1].get("data") if isinstance(payload[1], dict) else None
        children = listing.get("children") if isinstance(listing, dict) else None
        if not isinstance(children, list):
            return []
        permalink = str(item.payload.get("permalink") or "")
        replies: list[RawItem] = []
        self._extract_comments(children, permalink, replies)
        return replies

    def _parse_post(self, row: dict[str, Any]) -> RawItem | None:
        fullname = str(row.get("name") or "").strip()
        if not fullname:
            post_id = str(row.get("id") or "").strip()
            if not post_id:
                return None
            fullname = f"t3_{post_id}"
        created = _from_epoch(row.get("created_utc"))
        if created is None:
            return None
        title = str(row.get("title") or "")
        selftext = str(row.get("selftext") or "")
        return RawItem(
            external_id=fullname,
            created_at=created,
            text=f"{title}\n{selftext}" if selftext else title,
            author=str(row.get("author") or "Unknown"),
            url=f"https://reddit.com{row.get('permalink') or ''}",
            kind=ContentKind.POST,
            has_replies=int(row.get("num_comments") or 0) > 0,
            payload=row,
        )

    def _extract_comments(self, children: list[Any], permalink: str, out: list[RawItem]) -> None:
        for child in children:
            if not isinstance(child, dict):
                continue
            row = child.get("data")
            if not isinstance(row, dict):
                continue
            if child.get("kind") == "t1":
                created = _from_epoch(row.get("created_utc"))
                comment_id = str(row.get("id") or "").strip()
                if created is not None and comment_id:
                    out.append(
                        RawItem(
                            external_id=str(row.get("name") or f"t1_{comment_id}"),
                            created_at=created,
                            text=str(row.get("body") or ""),
                            author=str(row.get("author") or "Unknown"),
                            url=f"https://reddit.com{permalink}{comment_id}",
                            kind=ContentKind.COMMENT,
                            parent_id=str(row.get("parent_id") or "") or None,
                            payload=row,
                        )
                    )
            replies = row.get("replies")
            if isinstance(replies, dict):
                nested = replies.get("data", {}).get("children")
                if isinstance(nested, list):
                    self._extract_comments(nested, permalink, out)


def _from_epoch(value: Any) -> datetime | None:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
