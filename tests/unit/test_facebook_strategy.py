from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from intent_crawler.contract import ContentKind, Platform
from intent_crawler.crawlers.base import RawItem
from intent_crawler.crawlers.facebook import FacebookGroupStrategy, FacebookPageStrategy, parse_graph_time
from intent_crawler.crawlers.graph_api import GraphAPIClient
from intent_crawler.errors import FetchError

WATERMARK = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _graph(handler) -> GraphAPIClient:
    return GraphAPIClient(token="fb-token", transport=httpx.MockTransport(handler))


def test_parse_graph_time_accepts_graph_offsets():
    assert parse_graph_time("2026-03-01T10:00:00+0000") == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_graph_time("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_graph_time("yesterday") is None
    assert parse_graph_time(None) is None


async def test_page_feed_uses_since_and_marks_posts_for_comment_lookup():
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"id": "p_1", "message": "my phone battery dies", "created_time": "2026-03-01T10:00:00+0000", "from": {"name": "Lee"}},
                    {"id": "p_2", "created_time": "not a time"},
                ]
            },
        )

    strategy = FacebookPageStrategy(_graph(_handler))
    async with strategy.open_client() as client:
        items = await strategy.fetch_since(client, "page42", WATERMARK)

    request = seen[0]
    assert request.url.path == "/v17.0/page42/feed"
    assert request.url.params["since"] == str(int(WATERMARK.timestamp()))
    assert request.url.params["limit"] == "25"
    assert request.headers["Authorization"] == "Bearer fb-token"
    assert [item.external_id for item in items] == ["p_1"]
    assert items[0].has_replies is True
    assert items[0].author == "Lee"
    assert items[0].url == "https://facebook.com/p_1"
    assert strategy.platform is Platform.FACEBOOK


async def test_group_comments_carry_parent_and_nested_flag():
    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v17.0/p_9/comments"
        return httpx.Response(
            200,
            json={
                "data": [
                    {"id": "c_1", "message": "same problem", "created_time": "2026-03-01T10:05:00+0000", "comment_count": 2},
                    {"id": "c_2", "message": "+1", "created_time": "2026-03-01T10:06:00+0000"},
                ]
            },
        )

    strategy = FacebookGroupStrategy(_graph(_handler))
    post = RawItem(external_id="p_9", created_at=WATERMARK, kind=ContentKind.GROUP_POST, has_replies=True)
    async with strategy.open_client() as client:
        replies = await strategy.fetch_replies(client, "group7", post)

    assert [reply.parent_id for reply in replies] == ["p_9", "p_9"]
    assert [reply.has_replies for reply in replies] == [True, False]
    assert all(reply.kind is ContentKind.GROUP_COMMENT for reply in replies)
    assert strategy.post_url("group7", "p_9") == "https://facebook.com/groups/group7/posts/p_9"


async def test_graph_error_becomes_fetch_error():
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Invalid OAuth access token", "code": 190}})

    strategy = FacebookPageStrategy(_graph(_handler))
    async with strategy.open_client() as client:
        with pytest.raises(FetchError) as excinfo:
            await strategy.fetch_since(client, "page42", WATERMARK)
    assert excinfo.value.reason == "Invalid OAuth access token"
