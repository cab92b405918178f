#=======================================================================================
# vendor_dispatch/routes.py
# Job intake and status API. Intake only persists + enqueues; the worker does the rest.
#=======================================================================================

import logging
import uuid

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from vendor_dispatch.deps import get_queue, get_store
from vendor_dispatch.job_queue import JobQueue, QueueMessage
from vendor_dispatch.store import JobStore

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post("")
async def create_job(
    request: Request,
    store: JobStore = Depends(get_store),
    queue: JobQueue = Depends(get_queue),
):
    request_id = str(uuid.uuid4())
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    # any non-empty JSON object is accepted as-is
    if not isinstance(payload, dict) or not payload:
        logger.warning("[JOBS] invalid payload request_id=%s", request_id)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Invalid payload",
                "details": "payload must be a non-empty JSON object",
                "request_id": request_id,
            },
        )

    job = await store.create(request_id, payload)
    logger.info("[JOBS] created request_id=%s", request_id)

    await queue.push(QueueMessage(request_id=request_id, payload=payload, created_at=job.created_at.isoformat()))
    logger.info("[JOBS] queued request_id=%s", request_id)

    return JSONResponse(status_code=status.HTTP_201_CREATED, content={"request_id": request_id})


@router.get("/stats")
async def job_stats(store: JobStore = Depends(get_store)):
    return await store.count_by_status()


@router.get("/{request_id}")
async def get_job(request_id: str, store: JobStore = Depends(get_store)):
    job = await store.get(request_id)
    if job is None:
        return JSONResponse(status_code=404, content={"error": "Job not found", "request_id": request_id})
    return job.to_public()
