#===========================================================================
# vendor_dispatch/vendors/client.py
# Outbound calls to vendor processing endpoints.
# One POST per attempt; every failure surfaces as DispatchFailure and the
# caller decides about retries.
#===========================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from vendor_dispatch.config import settings
from vendor_dispatch.errors import DispatchFailure

logger = logging.getLogger("uvicorn.error")

SYNC = "sync"
ASYNC = "async"

USER_AGENT = "VendorWorker/1.0"


@dataclass(frozen=True)
class VendorSpec:
    name: str
    base_url: str
    mode: str = SYNC  # "sync" answers with the result, "async" acks and calls back later
    timeout: float = 30.0

    @property
    def process_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/process"


@dataclass
class VendorResponse:
    kind: str  # "success" | "error" | "accepted"
    data: Any = None
    error: Optional[str] = None
    status_code: int = 200

    @property
    def accepted(self) -> bool:
        return self.kind == "accepted"


def default_vendors() -> Dict[str, VendorSpec]:
    return {
        SYNC: VendorSpec(SYNC, settings.MOCK_VENDOR_SYNC_URL, SYNC, settings.VENDOR_SYNC_TIMEOUT),
        ASYNC: VendorSpec(ASYNC, settings.MOCK_VENDOR_ASYNC_URL, ASYNC, settings.VENDOR_ASYNC_TIMEOUT),
    }


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
    except ValueError:
        pass
    text = (resp.text or "").strip()
    return text[:200] or resp.reason_phrase or "vendor error"


class VendorClient:
    def __init__(
        self,
        vendors: Optional[Dict[str, VendorSpec]] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.vendors = vendors if vendors is not None else default_vendors()
        self._transport = transport

    @property
    def names(self) -> list[str]:
        return list(self.vendors.keys())

    def spec(self, vendor: str) -> VendorSpec:
        try:
            return self.vendors[vendor]
        except KeyError:
            raise DispatchFailure(vendor, f"unknown vendor: {vendor}")

    async def dispatch(self, vendor: str, request_id: str, payload: Any) -> VendorResponse:
        spec = self.spec(vendor)
        body = {"request_id": request_id, "payload": payload}
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}

        logger.info("[VENDOR] calling %s url=%s request_id=%s", vendor, spec.process_url, request_id)
        try:
            async with httpx.AsyncClient(timeout=spec.timeout, transport=self._transport) as client:
                resp = await client.post(spec.process_url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("[VENDOR] %s timed out after %.0fs request_id=%s", vendor, spec.timeout, request_id)
            raise DispatchFailure(vendor, f"timeout after {spec.timeout:g}s: {e!r}") from e
        except httpx.HTTPError as e:
            logger.error("[VENDOR] %s call failed request_id=%s: %s", vendor, request_id, e)
            raise DispatchFailure(vendor, f"connection error: {e}") from e

        logger.info("[VENDOR] %s responded status=%s request_id=%s", vendor, resp.status_code, request_id)

        # 429 and 5xx land here as well; all non-2xx answers are retryable
        if not resp.is_success:
            raise DispatchFailure(vendor, _error_detail(resp), resp.status_code)

        try:
            doc = resp.json()
        except ValueError as e:
            raise DispatchFailure(vendor, "malformed response: body is not JSON", resp.status_code) from e
        if not isinstance(doc, dict):
            raise DispatchFailure(vendor, "malformed response: expected a JSON object", resp.status_code)

        status = str(doc.get("status") or "").strip().lower()
        if not status and resp.status_code == 202:
            status = "accepted"

        if status == "success":
            return VendorResponse("success", data=doc.get("data"), status_code=resp.status_code)
        if status == "error":
            return VendorResponse(
                "error",
                error=str(doc.get("error") or "") or None,
                data=doc.get("data"),
                status_code=resp.status_code,
            )
        if status == "accepted":
            return VendorResponse("accepted", status_code=resp.status_code)
        raise DispatchFailure(vendor, f"malformed response: unknown status {status!r}", resp.status_code)
