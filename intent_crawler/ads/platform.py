"""Advertising platform boundary and its Meta Marketing API implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from intent_crawler.crawlers.graph_api import GraphAPIClient


class AdPlatform(ABC):
    """Four submission calls, each returning the created object's id."""

    @abstractmethod
    async def create_creative(self, spec: dict[str, Any]) -> str: ...

    @abstractmethod
    async def create_campaign(self, spec: dict[str, Any]) -> str: ...

    @abstractmethod
    async def create_ad_set(self, spec: dict[str, Any]) -> str: ...

    @abstractmethod
    async def create_ad(self, spec: dict[str, Any]) -> str: ...


class MetaAdPlatform(AdPlatform):
    def __init__(self, graph: GraphAPIClient, *, ad_account_id: str) -> None:
        self.graph = graph
        self.ad_account_id = ad_account_id.removeprefix("act_")

    @property
    def account_path(self) -> str:
        return f"act_{self.ad_account_id}"

    async def _create(self, edge: str, spec: dict[str, Any]) -> str:
        body = await self.graph.post(f"{self.account_path}/{edge}", spec)
        object_id = str(body.get("id") or "").strip()
        if not object_id:
            raise ValueError(f"{edge} response missing id")
        return object_id

    async def create_creative(self, spec: dict[str, Any]) -> str:
        return await self._create("adcreatives", spec)

    async def create_campaign(self, spec: dict[str, Any]) -> str:
        return await self._create("campaigns", spec)

    async def create_ad_set(self, spec: dict[str, Any]) -> str:
        return await self._create("adsets", spec)

    async def create_ad(self, spec: dict[str, Any]) -> str:
        return await self._create("ads", spec)
