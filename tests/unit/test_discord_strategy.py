from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from intent_crawler.contract import ContentKind
from intent_crawler.crawlers.discord import DiscordStrategy
from intent_crawler.errors import FetchError

WATERMARK = datetime(2026, 3, 1, tzinfo=timezone.utc)


async def test_messages_become_posts_and_replies():
    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bot bot-token"
        assert request.url.path == "/api/v10/channels/555/messages"
        return httpx.Response(
            200,
            json=[
                {
                    "id": "2",
                    "content": "which laptop for gaming?",
                    "timestamp": "2026-03-01T10:00:05.000000+00:00",
                    "author": {"username": "kai"},
                    "guild_id": "g1",
                    "message_reference": {"message_id": "1"},
                },
                {
                    "id": "1",
                    "content": "hello",
                    "timestamp": "2026-03-01T10:00:00Z",
                    "author": {"username": "ana"},
                    "guild_id": "g1",
                },
                {
                    "id": "3",
                    "content": "beep",
                    "timestamp": "2026-03-01T10:00:06Z",
                    "author": {"username": "helper", "bot": True},
                },
            ],
        )

    strategy = DiscordStrategy(token="bot-token")
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        items = await strategy.fetch_since(client, "555", WATERMARK)

    by_id = {item.external_id: item for item in items}
    assert set(by_id) == {"1", "2"}
    assert by_id["1"].kind is ContentKind.POST
    assert by_id["2"].kind is ContentKind.COMMENT
    assert by_id["2"].parent_id == "1"
    assert by_id["2"].url == "https://discord.com/channels/g1/555/2"
    assert by_id["1"].created_at == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


async def test_missing_token_is_a_fetch_error():
    async with httpx.AsyncClient() as client:
        with pytest.raises(FetchError) as excinfo:
            await DiscordStrategy().fetch_since(client, "555", WATERMARK)
    assert excinfo.value.reason == "missing_bot_token"


async def test_rate_limit_is_reported():
    transport = httpx.MockTransport(lambda request: httpx.Response(429, json={"retry_after": 1.5}))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(FetchError) as excinfo:
            await DiscordStrategy(token="t").fetch_since(client, "555", WATERMARK)
    assert excinfo.value.reason == "rate_limited"
