#=================================================================
# vendor_dispatch/vendors/mock_vendor.py
# Stand-in vendor for local runs and load tests.
#
#   VENDOR_TYPE=sync  -> /process answers with the result after a delay
#   VENDOR_TYPE=async -> /process answers 202, result posted to
#                        <API_SERVER_URL>/vendor-webhook/async later
#
# uvicorn vendor_dispatch.vendors.mock_vendor:app --port 3001
#=================================================================

from __future__ import annotations

import asyncio
import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from vendor_dispatch.config import settings

logger = logging.getLogger("uvicorn.error")

RATE_LIMITS = {"sync": "30 requests/minute", "async": "20 requests/minute"}


@dataclass
class MockVendorConfig:
    rate_limit_probability: float = 0.05
    error_probability: float = 0.1
    pii_probability: float = 0.3
    min_delay: float = 0.5
    max_delay: float = 2.5
    webhook_retry_delay: float = 5.0
    webhook_timeout: float = 10.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_mock_data(
    payload: Any, vendor_type: str, rng: random.Random, pii_probability: float = 0.3
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "processed_at": _now_iso(),
        "vendor_id": f"{vendor_type}-vendor",
        "original_payload_keys": list(payload.keys()) if isinstance(payload, dict) else [],
        "processed_data": {
            "id": "".join(rng.choices(string.ascii_lowercase + string.digits, k=9)),
            "status": "processed",
            "score": rng.randint(0, 99),
            "metadata": {
                "processing_time_ms": rng.randint(100, 1099),
                "vendor_version": "1.2.3",
                "confidence": f"{rng.random():.2f}",
            },
        },
    }
    # results the dispatcher must clean up
    if rng.random() < pii_probability:
        data["ssn"] = "123-45-6789"
        data["credit_card"] = "4111-1111-1111-1111"
    data["description"] = "  This is a test description with extra spaces  "
    data["note"] = "\t\nNote with whitespace\n\t"
    return data


def create_mock_vendor_app(
    vendor_type: str = "sync",
    api_server_url: str = "http://localhost:3000",
    *,
    config: Optional[MockVendorConfig] = None,
    rng: Optional[random.Random] = None,
    webhook_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    cfg = config or MockVendorConfig()
    rng = rng or random.Random()
    webhook_url = f"{api_server_url.rstrip('/')}/vendor-webhook/{vendor_type}"
    started = time.monotonic()

    vendor_app = FastAPI(title=f"Mock {vendor_type} vendor")

    def _delay() -> float:
        return rng.uniform(cfg.min_delay, cfg.max_delay)

    async def _post_webhook(body: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=cfg.webhook_timeout, transport=webhook_transport) as client:
            resp = await client.post(
                webhook_url,
                json=body,
                headers={"User-Agent": f"MockVendor-{vendor_type}/1.0"},
            )
            resp.raise_for_status()

    async def _deliver_later(request_id: str, payload: Any, delay: float) -> None:
        await asyncio.sleep(delay)
        if rng.random() < cfg.error_probability:
            body = {"request_id": request_id, "status": "error", "data": {"error": "Async processing failed"}}
        else:
            data = generate_mock_data(payload, vendor_type, rng, cfg.pii_probability)
            body = {"request_id": request_id, "status": "success", "data": data}

        logger.info("[MOCK-%s] sending webhook request_id=%s url=%s", vendor_type, request_id, webhook_url)
        try:
            await _post_webhook(body)
            logger.info("[MOCK-%s] webhook sent request_id=%s", vendor_type, request_id)
            return
        except httpx.HTTPError as e:
            logger.error("[MOCK-%s] webhook failed request_id=%s: %s", vendor_type, request_id, e)

        # one fallback delivery, reporting the failure
        await asyncio.sleep(cfg.webhook_retry_delay)
        fallback = {
            "request_id": request_id,
            "status": "error",
            "data": {"error": "Webhook delivery failed, retry attempted"},
        }
        try:
            await _post_webhook(fallback)
            logger.info("[MOCK-%s] webhook retry sent request_id=%s", vendor_type, request_id)
        except httpx.HTTPError as e:
            logger.error("[MOCK-%s] webhook retry failed request_id=%s: %s", vendor_type, request_id, e)

    @vendor_app.get("/health")
    async def health():
        return {"status": "healthy", "vendor_type": vendor_type, "timestamp": _now_iso()}

    @vendor_app.get("/status")
    async def status():
        return {
            "vendor_type": vendor_type,
            "status": "operational",
            "uptime": round(time.monotonic() - started, 3),
            "version": "1.0.0",
            "rate_limit": RATE_LIMITS.get(vendor_type, "unknown"),
            "features": (
                ["immediate_response", "synchronous_processing"]
                if vendor_type == "sync"
                else ["webhook_delivery", "asynchronous_processing", "high_volume"]
            ),
        }

    @vendor_app.post("/process")
    async def process(request: Request, background: BackgroundTasks):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        body = body if isinstance(body, dict) else {}
        request_id = body.get("request_id")
        payload = body.get("payload")
        logger.info("[MOCK-%s] processing request_id=%s", vendor_type, request_id)

        if not request_id:
            return JSONResponse(status_code=400, content={"status": "error", "error": "Missing request_id"})

        if rng.random() < cfg.rate_limit_probability:
            logger.info("[MOCK-%s] simulating rate limit request_id=%s", vendor_type, request_id)
            return JSONResponse(
                status_code=429,
                content={"status": "error", "error": "Rate limit exceeded", "retry_after": 60},
            )

        if rng.random() < cfg.error_probability:
            logger.info("[MOCK-%s] simulating error request_id=%s", vendor_type, request_id)
            return JSONResponse(status_code=500, content={"status": "error", "error": "Internal vendor error"})

        delay = _delay()
        if vendor_type == "sync":
            await asyncio.sleep(delay)
            return {
                "status": "success",
                "data": generate_mock_data(payload, vendor_type, rng, cfg.pii_probability),
                "processing_time_ms": int(delay * 1000),
            }

        background.add_task(_deliver_later, request_id, payload, delay)
        return JSONResponse(
            status_code=202,
            content={
                "status": "accepted",
                "request_id": request_id,
                "message": "Processing started, result will be sent via webhook",
            },
        )

    return vendor_app


app = create_mock_vendor_app(settings.VENDOR_TYPE, settings.API_SERVER_URL)
