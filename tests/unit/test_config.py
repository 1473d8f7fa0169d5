from __future__ import annotations

from pathlib import Path

import pytest

from intent_crawler.config import CrawlerConfig, load_config


def test_instance_id_prefers_env_override(monkeypatch, tmp_path: Path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("crawler:\n  instance_id: crawler-local-01\n", encoding="utf-8")
    monkeypatch.setenv("INTENT_CRAWLER_INSTANCE_ID", "crawler-vps-01")
    config = load_config(str(cfg))
    assert config.instance_id == "crawler-vps-01"


def test_missing_file_yields_defaults(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("INTENT_CRAWLER_DB_PATH", raising=False)
    config = load_config(str(tmp_path / "nope.yaml"))
    assert config.raw == {}
    assert config.db_path is None
    assert config.high_value_threshold == 70
    assert config.queue_size == 100
    assert config.watermark_policy == "cycle_start"
    assert config.analytics_retention_days == 30
    assert config.ads_enabled is False


def test_source_settings_expand_env_and_dedupe_targets(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("EXTRA_SUBREDDIT", "headphones")
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        "sources:\n"
        "  reddit:\n"
        "    enabled: true\n"
        "    poll_interval_seconds: 1\n"
        "    targets:\n"
        "      - smartphones\n"
        "      - ${EXTRA_SUBREDDIT}\n"
        "      - {name: smartphones}\n",
        encoding="utf-8",
    )
    reddit = load_config(str(cfg)).source("reddit")
    assert reddit.enabled is True
    assert reddit.targets == ["smartphones", "headphones"]
    assert reddit.poll_interval_seconds == 5.0
    assert reddit.reply_depth == 2


def test_default_poll_intervals_per_platform():
    config = CrawlerConfig(raw={})
    assert config.source("reddit").poll_interval_seconds == 60
    assert config.source("discord").poll_interval_seconds == 120
    assert config.source("facebook_pages").poll_interval_seconds == 300
    assert config.source("facebook_groups").poll_interval_seconds == 300


def test_invalid_watermark_policy_is_rejected():
    config = CrawlerConfig(raw={"pipeline": {"watermark_policy": "latest"}})
    with pytest.raises(ValueError):
        _ = config.watermark_policy


def test_ads_need_enabled_flag_and_account(monkeypatch):
    monkeypatch.delenv("FB_AD_ACCOUNT_ID", raising=False)
    config = CrawlerConfig(raw={"ads": {"enabled": True, "performance_interval_minutes": 15}})
    assert config.ads_enabled is False
    monkeypatch.setenv("FB_AD_ACCOUNT_ID", "1234")
    assert config.ads_enabled is True
    assert config.ad_performance_interval_seconds == 900


def test_non_mapping_config_is_an_error(tmp_path: Path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(cfg))
