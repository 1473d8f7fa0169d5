from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from intent_crawler.contract import ContentKind
from intent_crawler.crawlers.base import RawItem
from intent_crawler.crawlers.reddit import RedditStrategy
from intent_crawler.errors import FetchError

WATERMARK = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _listing(*posts: dict) -> dict:
    return {"kind": "Listing", "data": {"children": [{"kind": "t3", "data": post} for post in posts]}}


def _comment(comment_id: str, created: float, parent: str, body: str, replies=None) -> dict:
    data = {
        "id": comment_id,
        "name": f"t1_{comment_id}",
        "created_utc": created,
        "parent_id": parent,
        "body": body,
        "author": "commenter",
        "replies": replies or "",
    }
    return {"kind": "t1", "data": data}


async def test_fetch_since_parses_new_posts():
    requests: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json=_listing(
                {
                    "id": "abc",
                    "name": "t3_abc",
                    "title": "Need new earbuds",
                    "selftext": "Mine keep disconnecting",
                    "author": "sam",
                    "permalink": "/r/headphones/comments/abc/need_new_earbuds/",
                    "created_utc": 1772366400,
                    "num_comments": 3,
                },
                {"id": "", "title": "missing id", "created_utc": 1772366400},
            ),
        )

    strategy = RedditStrategy()
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        items = await strategy.fetch_since(client, "headphones", WATERMARK)

    assert str(requests[0].url).startswith("https://www.reddit.com/r/headphones/new.json")
    assert requests[0].url.params["limit"] == "25"
    assert len(items) == 1
    item = items[0]
    assert item.external_id == "t3_abc"
    assert item.text == "Need new earbuds\nMine keep disconnecting"
    assert item.author == "sam"
    assert item.url == "https://reddit.com/r/headphones/comments/abc/need_new_earbuds/"
    assert item.has_replies is True
    assert item.created_at == datetime.fromtimestamp(1772366400, tz=timezone.utc)


async def test_token_switches_to_oauth_host():
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_listing())

    strategy = RedditStrategy(token="secret")
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        assert await strategy.fetch_since(client, "gadgets", WATERMARK) == []
    assert seen[0].url.host == "oauth.reddit.com"
    assert seen[0].headers["Authorization"] == "Bearer secret"


async def test_fetch_replies_flattens_comment_tree():
    nested = {"data": {"children": [_comment("c2", 1772366500, "t1_c1", "same here")]}}

    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/comments/abc.json"
        return httpx.Response(
            200,
            json=[
                _listing(),
                {"data": {"children": [_comment("c1", 1772366450, "t3_abc", "try resetting", nested), {"kind": "more", "data": {}}]}},
            ],
        )

    post = RawItem(
        external_id="t3_abc",
        created_at=WATERMARK,
        has_replies=True,
        payload={"id": "abc", "permalink": "/r/headphones/comments/abc/x/"},
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        replies = await RedditStrategy().fetch_replies(client, "headphones", post)

    assert [reply.external_id for reply in replies] == ["t1_c1", "t1_c2"]
    assert [reply.parent_id for reply in replies] == ["t3_abc", "t1_c1"]
    assert all(reply.kind is ContentKind.COMMENT for reply in replies)
    assert replies[0].url == "https://reddit.com/r/headphones/comments/abc/x/c1"


@pytest.mark.parametrize(
    ("response", "reason"),
    [
        (httpx.Response(503), "http_503"),
        (httpx.Response(200, text="<html>"), "malformed_json"),
        (httpx.Response(200, json={"data": {}}), "malformed_listing"),
    ],
)
async def test_fetch_failures_raise_fetch_error(response: httpx.Response, reason: str):
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as client:
        with pytest.raises(FetchError) as excinfo:
            await RedditStrategy().fetch_since(client, "gadgets", WATERMARK)
    assert excinfo.value.reason == reason
    assert excinfo.value.target == "gadgets"


async def test_network_error_raises_fetch_error():
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        with pytest.raises(FetchError) as excinfo:
            await RedditStrategy().fetch_since(client, "gadgets", WATERMARK)
    assert excinfo.value.reason == "http_error:ConnectError"
