"""Per-target watermark store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any

from intent_crawler.contract import ensure_utc

logger = logging.getLogger(__name__)

LoadStateFn = Callable[[str], "dict[str, Any] | None"]
SaveStateFn = Callable[[str, "dict[str, Any]"], None]


class WatermarkStore:
    """Maps (platform, target) to the last-processed timestamp.

    Values never move backwards. The crawler owning a target is the only
    writer; everyone else reads through :meth:`snapshot`.
    """

    def __init__(self) -> None:
        self._marks: dict[tuple[str, str], datetime] = {}
        self._load_state_fn: LoadStateFn = lambda source_key: None
        self._save_state_fn: SaveStateFn = lambda source_key, state: None

    def set_state_backend(self, load_state_fn: LoadStateFn, save_state_fn: SaveStateFn) -> None:
        self._load_state_fn = load_state_fn
        self._save_state_fn = save_state_fn

    @staticmethod
    def _state_key(platform: str, target: str) -> str:
        return f"watermark:{platform}:{target}"

    def _hydrate(self, platform: str, target: str) -> datetime | None:
        raw = self._load_state_fn(self._state_key(platform, target))
        if not isinstance(raw, dict):
            return None
        value = str(raw.get("watermark") or "").strip()
        if not value:
            return None
        try:
            return ensure_utc(datetime.fromisoformat(value))
        except ValueError:
            logger.warning("Ignoring unparseable persisted watermark platform=%s target=%s value=%s", platform, target, value)
            return None

    def _persist(self, platform: str, target: str, value: datetime) -> None:
        try:
            self._save_state_fn(self._state_key(platform, target), {"watermark": value.isoformat()})
        except Exception as exc:
            logger.warning("Watermark persist failed platform=%s target=%s error=%s", platform, target, exc)

    def initialize(self, platform: str, target: str, now: datetime) -> datetime:
        """Set the watermark for a new target; an existing value is kept."""
        key = (platform, target)
        current = self._marks.get(key)
        if current is not None:
            return current
        value = self._hydrate(platform, target) or ensure_utc(now)
        self._marks[key] = value
        self._persist(platform, target, value)
        return value

    def get(self, platform: str, target: str) -> datetime | None:
        return self._marks.get((platform, target))

    def advance(self, platform: str, target: str, value: datetime) -> datetime:
        key = (platform, target)
        value = ensure_utc(value)
        current = self._marks.get(key)
        if current is not None and value <= current:
            return current
        self._marks[key] = value
        self._persist(platform, target, value)
        return value

    def snapshot(self) -> Mapping[tuple[str, str], datetime]:
        return MappingProxyType(dict(self._marks))

    def __len__(self) -> int:
        return len(self._marks)
