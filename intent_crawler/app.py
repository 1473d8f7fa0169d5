"""Intent crawler FastAPI app."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from intent_crawler import __version__
from intent_crawler.config import CrawlerConfig, load_config
from intent_crawler.contract import Platform
from intent_crawler.logging import configure_logging
from intent_crawler.metrics import MetricsRegistry
from intent_crawler.runtime import CrawlerRuntime
from intent_crawler.store.sqlite import connect, ensure_schema

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Intent Crawler", version=__version__)

_metrics = MetricsRegistry()
_config: CrawlerConfig | None = None
_db_conn = None
_runtime: CrawlerRuntime | None = None


class EngagementUpdateRequest(BaseModel):
    clicks: int | None = Field(default=None, ge=0)
    replies: int | None = Field(default=None, ge=0)
    conversions: int | None = Field(default=None, ge=0)


@app.on_event("startup")
async def _startup() -> None:
    global _config, _db_conn, _runtime
    _config = load_config()
    if _config.db_path is not None:
        _db_conn = connect(_config.db_path)
        ensure_schema(_db_conn)
    _runtime = CrawlerRuntime(config=_config, metrics=_metrics, conn=_db_conn)
    await _runtime.start()
    logger.info("Intent crawler started instance_id=%s db_path=%s", _config.instance_id, _config.db_path)


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _db_conn, _runtime
    if _runtime is not None:
        await _runtime.stop()
        _runtime = None
    if _db_conn is not None:
        _db_conn.close()
        _db_conn = None


def _require_runtime() -> CrawlerRuntime:
    if _runtime is None:
        raise HTTPException(status_code=503, detail="runtime_not_ready")
    return _runtime


@app.get("/healthz")
async def healthz() -> dict[str, object]:
    _metrics.inc("http.healthz.calls")
    return {"status": "ok"}


@app.get("/readyz")
async def readyz() -> dict[str, object]:
    _metrics.inc("http.readyz.calls")
    if _runtime is None:
        return {"ready": False}
    return {
        "ready": True,
        "instance_id": _runtime.config.instance_id,
        "crawlers": sorted(_runtime.manager.crawlers),
    }


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics() -> str:
    return _metrics.render_prometheus()


@app.get("/analytics/summary")
async def analytics_summary() -> dict[str, Any]:
    runtime = _require_runtime()
    return {"ok": True, "metrics": runtime.recorder.get_performance_metrics()}


@app.get("/analytics/ads")
async def analytics_ads() -> dict[str, Any]:
    runtime = _require_runtime()
    return {"ok": True, "metrics": runtime.recorder.get_ad_performance_metrics()}


@app.post("/analytics/responses/{response_id}/engagement")
async def update_engagement(response_id: str, payload: EngagementUpdateRequest) -> dict[str, Any]:
    runtime = _require_runtime()
    engagement = payload.model_dump(exclude_none=True)
    if not runtime.recorder.update_engagement(response_id.strip(), engagement):
        raise HTTPException(status_code=404, detail="response_not_found")
    return {"ok": True}


@app.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str = Query(default="", alias="hub.mode"),
    token: str = Query(default="", alias="hub.verify_token"),
    challenge: str = Query(default="", alias="hub.challenge"),
) -> str:
    expected = _config.whatsapp_verify_token if _config is not None else ""
    if mode == "subscribe" and expected and token == expected:
        logger.info("Webhook verified")
        return challenge
    raise HTTPException(status_code=403, detail="verification_failed")


def _first_message(payload: Any) -> dict[str, Any] | None:
    try:
        message = payload["entry"][0]["changes"][0]["value"]["messages"][0]
    except (KeyError, IndexError, TypeError):
        return None
    return message if isinstance(message, dict) else None


@app.post("/webhook")
async def receive_webhook(request: Request) -> dict[str, Any]:
    _metrics.inc("http.webhook.calls")
    try:
        payload = await request.json()
    except ValueError:
        return {"ok": False}
    message = _first_message(payload)
    if message is None:
        return {"ok": True}
    sender = str(message.get("from") or "").strip()
    text = message.get("text")
    body = str(text.get("body") or "").strip() if isinstance(text, dict) else ""
    if not sender or not body or _runtime is None:
        return {"ok": False}
    try:
        await _runtime.manager.reply_direct(Platform.WHATSAPP, sender, body)
    except Exception as exc:
        _metrics.inc("http.webhook.failures")
        logger.warning("WhatsApp reply failed error=%s", exc)
        return {"ok": False}
    return {"ok": True}
