"""Per-platform reply transports."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from intent_crawler.crawlers.graph_api import GRAPH_BASE_URL, GraphAPIClient, GraphAPIError
from intent_crawler.errors import DispatchError

logger = logging.getLogger(__name__)


class Transport(ABC):
    @abstractmethod
    async def send(self, recipient: str, text: str, metadata: dict[str, Any]) -> str:
        """Deliver ``text`` and return the platform's id for it. Raise DispatchError on failure."""


async def _post(
    url: str,
    *,
    headers: dict[str, str],
    timeout_seconds: float,
    transport: httpx.AsyncBaseTransport | None,
    json: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout_seconds, transport=transport) as client:
            resp = await client.post(url, headers=headers, json=json, data=data)
    except httpx.HTTPError as exc:
        raise DispatchError(f"http_error:{type(exc).__name__}") from exc
    if resp.status_code >= 400:
        raise DispatchError(f"status_{resp.status_code}: {resp.text[:300]}")
    try:
        decoded = resp.json()
    except ValueError as exc:
        raise DispatchError("malformed_json") from exc
    return decoded if isinstance(decoded, dict) else {"payload": decoded}


class RedditTransport(Transport):
    """Reply to a post or comment by its fullname."""

    def __init__(self, *, token: str, user_agent: str, timeout_seconds: float = 20.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.token = token
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, recipient: str, text: str, metadata: dict[str, Any]) -> str:
        if not self.token:
            raise DispatchError("reddit token not configured")
        body = await _post(
            "https://oauth.reddit.com/api/comment",
            headers={"Authorization": f"Bearer {self.token}", "User-Agent": self.user_agent},
            data={"thing_id": recipient, "text": text, "api_type": "json"},
            timeout_seconds=self.timeout_seconds,
            transport=self._transport,
        )
        envelope = body.get("json") if isinstance(body.get("json"), dict) else {}
        errors = envelope.get("errors") or []
        if errors:
            raise DispatchError(f"reddit rejected comment: {errors}")
        things = (envelope.get("data") or {}).get("things") or []
        for thing in things:
            data = thing.get("data") if isinstance(thing, dict) else None
            if isinstance(data, dict) and data.get("name"):
                return str(data["name"])
        raise DispatchError("reddit response missing comment id")


class DiscordTransport(Transport):
    """Post into a channel, replying to the source message when known."""

    def __init__(self, *, token: str, timeout_seconds: float = 20.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.token = token
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, recipient: str, text: str, metadata: dict[str, Any]) -> str:
        if not self.token:
            raise DispatchError("discord token not configured")
        payload: dict[str, Any] = {"content": text[:2000]}
        message_id = str(metadata.get("message_id") or "").strip()
        if message_id:
            payload["message_reference"] = {"message_id": message_id, "fail_if_not_exists": False}
        body = await _post(
            f"https://discord.com/api/v10/channels/{recipient}/messages",
            headers={"Authorization": f"Bot {self.token}"},
            json=payload,
            timeout_seconds=self.timeout_seconds,
            transport=self._transport,
        )
        if not body.get("id"):
            raise DispatchError("discord response missing message id")
        return str(body["id"])


class FacebookTransport(Transport):
    """Comment on a page or group object through the Graph API."""

    def __init__(self, graph: GraphAPIClient) -> None:
        self.graph = graph

    async def send(self, recipient: str, text: str, metadata: dict[str, Any]) -> str:
        try:
            body = await self.graph.post(f"{recipient}/comments", {"message": text})
        except GraphAPIError as exc:
            raise DispatchError(exc.message) from exc
        if not body.get("id"):
            raise DispatchError("graph response missing comment id")
        return str(body["id"])


class WhatsAppTransport(Transport):
    """Send a text message through the WhatsApp Cloud API."""

    def __init__(
        self,
        *,
        token: str,
        phone_number_id: str,
        base_url: str = GRAPH_BASE_URL,
        timeout_seconds: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, recipient: str, text: str, metadata: dict[str, Any]) -> str:
        if not self.token or not self.phone_number_id:
            raise DispatchError("whatsapp credentials not configured")
        body = await _post(
            f"{self.base_url}/{self.phone_number_id}/messages",
            headers={"Authorization": f"Bearer {self.token}"},
            json={
                "messaging_product": "whatsapp",
                "to": recipient,
                "type": "text",
                "text": {"body": text},
            },
            timeout_seconds=self.timeout_seconds,
            transport=self._transport,
        )
        messages = body.get("messages")
        if isinstance(messages, list) and messages and isinstance(messages[0], dict) and messages[0].get("id"):
            return str(messages[0]["id"])
        raise DispatchError("whatsapp response missing message id")
