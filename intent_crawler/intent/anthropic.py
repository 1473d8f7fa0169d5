"""Async client for the Anthropic Messages API."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from intent_crawler.llm_auth import LLMAuthSettings

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class MessagesAPIError(Exception):
    pass


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object found in ``text``, if any."""
    if not text:
        return None
    stripped = text.strip()
    try:
        parsed = json.loads(stripped)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start >= 0 and end > start:
        try:
            parsed = json.loads(stripped[start : end + 1])
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


class AnthropicMessagesClient:
    def __init__(
        self,
        auth: LLMAuthSettings,
        *,
        model: str,
        max_tokens: int = 600,
        temperature: float = 0.0,
        timeout_seconds: float = 45.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.auth = auth
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def complete(self, *, system: str, user: str, max_tokens: int | None = None) -> str:
        if not self.auth.api_key:
            raise MessagesAPIError("llm api key not configured")
        body = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        headers = {
            "content-type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
            "x-api-key": self.auth.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                resp = await client.post(self.auth.messages_endpoint, headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise MessagesAPIError(f"http_error:{type(exc).__name__}") from exc
        if resp.status_code >= 400:
            raise MessagesAPIError(f"status_{resp.status_code}: {resp.text[:300]}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise MessagesAPIError("malformed_json") from exc

        text_parts: list[str] = []
        for block in payload.get("content", []) if isinstance(payload, dict) else []:
            if isinstance(block, dict) and block.get("type") == "text":
                text_parts.append(str(block.get("text") or ""))
        usage = payload.get("usage") if isinstance(payload, dict) else None
        if isinstance(usage, dict):
            logger.debug(
                "LLM usage model=%s input_tokens=%s output_tokens=%s",
                self.model,
                usage.get("input_tokens"),
                usage.get("output_tokens"),
            )
        return "\n".join(text_parts).strip()
