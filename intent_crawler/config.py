"""Intent crawler configuration loading."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Seconds between poll cycles when a source does not configure its own.
DEFAULT_POLL_INTERVALS: dict[str, float] = {
    "reddit": 60.0,
    "discord": 120.0,
    "facebook_pages": 300.0,
    "facebook_groups": 300.0,
}

WATERMARK_POLICIES = ("cycle_start", "max_item")


def _expand_env(value: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        return os.getenv(match.group(1), "")

    return _ENV_PATTERN.sub(_replace, value)


def _expand_tree(node: Any) -> Any:
    if isinstance(node, dict):
        return {k: _expand_tree(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_expand_tree(v) for v in node]
    if isinstance(node, str):
        return _expand_env(node)
    return node


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


@dataclass(slots=True)
class SourceSettings:
    name: str
    enabled: bool
    targets: list[str]
    poll_interval_seconds: float
    reply_depth: int
    timeout_seconds: float


@dataclass(slots=True)
class CrawlerConfig:
    raw: dict[str, Any]

    def _section(self, name: str) -> dict[str, Any]:
        section = self.raw.get(name) if isinstance(self.raw, dict) else None
        return section if isinstance(section, dict) else {}

    @property
    def instance_id(self) -> str:
        return str(
            os.getenv("INTENT_CRAWLER_INSTANCE_ID")
            or self._section("crawler").get("instance_id")
            or "intent-crawler-local"
        )

    @property
    def db_path(self) -> Path | None:
        override = _env("INTENT_CRAWLER_DB_PATH")
        if override:
            return Path(override).expanduser()
        configured = str(self._section("storage").get("db_path") or "").strip()
        return Path(configured).expanduser() if configured else None

    def source(self, name: str) -> SourceSettings:
        cfg = self._section("sources").get(name)
        cfg = cfg if isinstance(cfg, dict) else {}
        targets: list[str] = []
        for item in cfg.get("targets") or []:
            if isinstance(item, dict):
                item = item.get("id") or item.get("name") or ""
            value = str(item or "").strip()
            if value and value not in targets:
                targets.append(value)
        default_interval = DEFAULT_POLL_INTERVALS.get(name, 60.0)
        return SourceSettings(
            name=name,
            enabled=bool(cfg.get("enabled", False)),
            targets=targets,
            poll_interval_seconds=max(5.0, float(cfg.get("poll_interval_seconds", default_interval))),
            reply_depth=max(0, int(cfg.get("reply_depth", 2))),
            timeout_seconds=max(5.0, float(cfg.get("timeout_seconds", 20))),
        )

    @property
    def high_value_threshold(self) -> float:
        return float(self._section("pipeline").get("high_value_threshold", 70))

    @property
    def queue_size(self) -> int:
        return max(1, int(self._section("pipeline").get("queue_size", 100)))

    @property
    def watermark_policy(self) -> str:
        policy = str(self._section("pipeline").get("watermark_policy") or "cycle_start").strip().lower()
        if policy not in WATERMARK_POLICIES:
            raise ValueError(f"watermark_policy must be one of {WATERMARK_POLICIES}, got {policy!r}")
        return policy

    @property
    def analytics_retention_days(self) -> int:
        return max(1, int(self._section("analytics").get("retention_days", 30)))

    @property
    def ads_enabled(self) -> bool:
        return bool(self._section("ads").get("enabled", False)) and bool(self.ad_account_id)

    @property
    def ad_account_id(self) -> str:
        return _env("FB_AD_ACCOUNT_ID") or str(self._section("ads").get("ad_account_id") or "").strip()

    @property
    def ad_page_id(self) -> str:
        return _env("FB_PAGE_ID") or str(self._section("ads").get("page_id") or "").strip()

    @property
    def website_url(self) -> str:
        return _env("WEBSITE_URL") or str(self._section("ads").get("website_url") or "https://example.com")

    @property
    def ad_performance_interval_seconds(self) -> float:
        minutes = float(self._section("ads").get("performance_interval_minutes", 60))
        return max(60.0, minutes * 60.0)

    @property
    def llm_model(self) -> str:
        return str(self._section("llm").get("model") or os.getenv("INTENT_CRAWLER_LLM_MODEL") or "claude-3-5-haiku-latest")

    @property
    def llm_env_file(self) -> Path:
        raw = _env("INTENT_CRAWLER_ENV_FILE") or str(self._section("llm").get("env_file") or ".env")
        return Path(raw).expanduser()

    @property
    def reddit_token(self) -> str:
        return _env("REDDIT_TOKEN")

    @property
    def discord_token(self) -> str:
        return _env("DISCORD_BOT_TOKEN")

    @property
    def facebook_token(self) -> str:
        return _env("FACEBOOK_TOKEN")

    @property
    def whatsapp_token(self) -> str:
        return _env("WHATSAPP_TOKEN")

    @property
    def whatsapp_phone_number_id(self) -> str:
        return _env("WHATSAPP_PHONE_NUMBER_ID")

    @property
    def whatsapp_verify_token(self) -> str:
        return _env("WHATSAPP_VERIFY_TOKEN")


def load_config(config_path: str | None = None) -> CrawlerConfig:
    path = Path(config_path or os.getenv("INTENT_CRAWLER_CONFIG_PATH") or "config/config.yaml")
    if not path.exists():
        return CrawlerConfig(raw={})
    payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"config file must parse to object: {path}")
    return CrawlerConfig(raw=_expand_tree(payload))
