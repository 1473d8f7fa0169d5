"""Minimal Facebook Graph API client shared by crawling, replies and ads."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GRAPH_API_VERSION = "v17.0"
GRAPH_BASE_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}"


class GraphAPIError(Exception):
    def __init__(self, status_code: int, message: str, payload: dict[str, Any] | None = None) -> None:
        super().__init__(f"graph api status={status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}


class GraphAPIClient:
    """Thin request wrapper: bearer auth, JSON decoding and error normalization."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = GRAPH_BASE_URL,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def open_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def get(self, path: str, params: dict[str, Any] | None = None, *, client: httpx.AsyncClient | None = None) -> dict[str, Any]:
        return await self._request("GET", path, params=params, client=client)

    async def post(self, path: str, body: dict[str, Any], *, client: httpx.AsyncClient | None = None) -> dict[str, Any]:
        return await self._request("POST", path, json=body, client=client)

    async def get_list(self, path: str, params: dict[str, Any] | None = None, *, client: httpx.AsyncClient | None = None) -> list[dict[str, Any]]:
        payload = await self.get(path, params, client=client)
        data = payload.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise GraphAPIError(200, "malformed_list", payload)
        return [row for row in data if isinstance(row, dict)]

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            if client is None:
                async with self.open_client() as owned:
                    resp = await owned.request(method, url, params=params, json=json, headers=self._headers())
            else:
                resp = await client.request(method, url, params=params, json=json, headers=self._headers())
        except httpx.HTTPError as exc:
            raise GraphAPIError(0, f"http_error:{type(exc).__name__}") from exc
        try:
            decoded = resp.json()
        except ValueError:
            raise GraphAPIError(resp.status_code, "malformed_json", {"raw_text": resp.text[:500]})
        body = decoded if isinstance(decoded, dict) else {"payload": decoded}
        error = body.get("error")
        if resp.status_code >= 400 or isinstance(error, dict):
            message = str(error.get("message") if isinstance(error, dict) else "") or f"http_{resp.status_code}"
            raise GraphAPIError(resp.status_code, message, body)
        return body
