# vendor_dispatch/reconciler.py
#
# Applies vendor outcomes to jobs. Called from the worker (sync vendors, retry
# exhaustion) and from the webhook endpoint (async vendors), possibly at the
# same time for the same job. The first terminal write wins; later calls see
# ALREADY_FINALIZED and change nothing.
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from vendor_dispatch.errors import SanitizationError
from vendor_dispatch.models.jobs import COMPLETE, FAILED, utcnow
from vendor_dispatch.sanitizer import sanitize
from vendor_dispatch.store import JobStore, UpdateStatus

logger = logging.getLogger("uvicorn.error")

DEFAULT_FAILURE_MESSAGE = "Vendor processing failed"

ReconcileResult = UpdateStatus


@dataclass(frozen=True)
class Outcome:
    ok: bool
    data: Any = None
    message: Optional[str] = None

    @classmethod
    def success(cls, data: Any) -> "Outcome":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, message: Optional[str] = None) -> "Outcome":
        return cls(ok=False, message=message)


class JobReconciler:
    def __init__(self, store: JobStore, sensitive_fields: Optional[Iterable[str]] = None) -> None:
        self.store = store
        self.sensitive_fields = list(sensitive_fields) if sensitive_fields is not None else None

    async def reconcile(
        self,
        request_id: str,
        outcome: Outcome,
        *,
        vendor_response: bool = False,
    ) -> ReconcileResult:
        now = utcnow()
        values: dict[str, Any] = {"updated_at": now}
        if vendor_response:
            values["vendor_response_received_at"] = now

        if outcome.ok:
            try:
                cleaned = sanitize(outcome.data, self.sensitive_fields)
            except SanitizationError as e:
                logger.error("[RECONCILE] request_id=%s result rejected: %s", request_id, e)
                values.update(status=FAILED, error_message=f"Result sanitization failed: {e}", failed_at=now)
            else:
                values.update(status=COMPLETE, result=cleaned, completed_at=now)
        else:
            values.update(
                status=FAILED,
                error_message=outcome.message or DEFAULT_FAILURE_MESSAGE,
                failed_at=now,
            )

        res = await self.store.finalize(request_id, values)
        if res is UpdateStatus.APPLIED:
            logger.info("[RECONCILE] request_id=%s -> %s", request_id, values["status"])
        elif res is UpdateStatus.ALREADY_FINALIZED:
            logger.info("[RECONCILE] request_id=%s already finalized; %s outcome ignored",
                        request_id, "success" if outcome.ok else "failure")
        else:
            logger.warning("[RECONCILE] request_id=%s not found", request_id)
        return res
