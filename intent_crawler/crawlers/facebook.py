"""Facebook page and group fetch strategies over the Graph API feed."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from intent_crawler.contract import ContentKind, Platform
from intent_crawler.crawlers.base import FetchStrategy, RawItem
from intent_crawler.crawlers.graph_api import GraphAPIClient, GraphAPIError
from intent_crawler.errors import FetchError

FEED_FIELDS = "id,message,created_time,from"
COMMENT_FIELDS = "id,message,created_time,from,comment_count"


def parse_graph_time(value: Any) -> datetime | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%dT%H:%M:%S%z")
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


class _GraphFeedStrategy(FetchStrategy):
    supports_replies = True
    default_interval_seconds = 300.0
    post_kind: ContentKind
    comment_kind: ContentKind

    def __init__(self, graph: GraphAPIClient, *, post_limit: int = 25, comment_limit: int = 50) -> None:
        self.graph = graph
        self.post_limit = max(1, min(100, int(post_limit)))
        self.comment_limit = max(1, min(100, int(comment_limit)))
        self.timeout_seconds = graph.timeout_seconds

    def open_client(self) -> httpx.AsyncClient:
        return self.graph.open_client()

    def post_url(self, target: str, post_id: str) -> str:
        return f"https://facebook.com/{post_id}"

    async def fetch_since(self, client: httpx.AsyncClient, target: str, watermark: datetime) -> list[RawItem]:
        params = {
            "fields": FEED_FIELDS,
            "since": int(watermark.timestamp()),
            "limit": self.post_limit,
        }
        try:
            rows = await self.graph.get_list(f"{target}/feed", params, client=client)
        except GraphAPIError as exc:
            raise FetchError(self.name, target, exc.message) from exc
        items: list[RawItem] = []
        for row in rows:
            item = self._parse(row, self.post_kind, lambda post_id: self.post_url(target, post_id))
            if item is not None:
                # The feed does not report comment counts; always look.
                item.has_replies = True
                items.append(item)
        return items

    async def fetch_replies(self, client: httpx.AsyncClient, target: str, item: RawItem) -> list[RawItem]:
        params = {"fields": COMMENT_FIELDS, "limit": self.comment_limit}
        try:
            rows = await self.graph.get_list(f"{item.external_id}/comments", params, client=client)
        except GraphAPIError as exc:
            raise FetchError(self.name, target, exc.message) from exc
        replies: list[RawItem] = []
        for row in rows:
            reply = self._parse(row, self.comment_kind, lambda comment_id: f"https://facebook.com/{comment_id}")
            if reply is None:
                continue
            reply.parent_id = item.external_id
            reply.has_replies = int(row.get("comment_count") or 0) > 0
            replies.append(reply)
        return replies

    def _parse(self, row: dict[str, Any], kind: ContentKind, url_for) -> RawItem | None:
        object_id = str(row.get("id") or "").strip()
        created = parse_graph_time(row.get("created_time"))
        if not object_id or created is None:
            return None
        sender = row.get("from") if isinstance(row.get("from"), dict) else {}
        return RawItem(
            external_id=object_id,
            created_at=created,
            text=str(row.get("message") or ""),
            author=str(sender.get("name") or "Unknown"),
            url=url_for(object_id),
            kind=kind,
            payload=row,
        )


class FacebookPageStrategy(_GraphFeedStrategy):
    name = "facebook_pages"
    platform = Platform.FACEBOOK
    post_kind = ContentKind.POST
    comment_kind = ContentKind.COMMENT


class FacebookGroupStrategy(_GraphFeedStrategy):
    name = "facebook_groups"
    platform = Platform.FACEBOOK_GROUP
    post_kind = ContentKind.GROUP_POST
    comment_kind = ContentKind.GROUP_COMMENT

    def post_url(self, target: str, post_id: str) -> str:
        return f"https://facebook.com/groups/{target}/posts/{post_id}"
