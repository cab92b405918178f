# vendor_dispatch/webhooks/vendor.py
import logging
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from vendor_dispatch.deps import get_reconciler
from vendor_dispatch.models.jobs import COMPLETE, FAILED
from vendor_dispatch.reconciler import JobReconciler, Outcome, ReconcileResult
from vendor_dispatch.webhooks.models import VendorWebhookPayload

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/vendor-webhook", tags=["Vendor Webhooks"])

DEFAULT_WEBHOOK_FAILURE = "Vendor failed"


@router.post("/{vendor}")
async def vendor_webhook(
    vendor: str,
    request: Request,
    reconciler: JobReconciler = Depends(get_reconciler),
) -> Response:
    # 1) Parse and validate JSON payload
    try:
        raw_payload = await request.json()
        payload = VendorWebhookPayload.model_validate(raw_payload)
    except (ValueError, ValidationError) as e:
        logger.warning("[WEBHOOK] %s payload validation error: %s", vendor, e)
        return JSONResponse(status_code=422, content={"ok": False, "reason": "invalid_payload", "error": str(e)})

    request_id = payload.request_id
    logger.info("[WEBHOOK] received vendor=%s request_id=%s status=%s", vendor, request_id, payload.status)

    # 2) Map to an outcome; "success" without data counts as a failure
    if payload.status == "success" and payload.data is not None:
        outcome = Outcome.success(payload.data)
    else:
        outcome = Outcome.failure(payload.failure_message() or DEFAULT_WEBHOOK_FAILURE)

    # 3) Reconcile (idempotent; late or duplicate deliveries are no-ops)
    res = await reconciler.reconcile(request_id, outcome, vendor_response=True)

    if res is ReconcileResult.NOT_FOUND:
        return JSONResponse(status_code=404, content={"ok": False, "error": "Job not found", "request_id": request_id})

    if res is ReconcileResult.ALREADY_FINALIZED:
        return JSONResponse({"ok": True, "request_id": request_id, "already_finalized": True})

    status = COMPLETE if outcome.ok else FAILED
    job = await reconciler.store.get(request_id)
    if job is not None:
        status = job.status
    return JSONResponse({"ok": True, "request_id": request_id, "status": status})
