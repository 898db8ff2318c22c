from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from core.errors import JobNotFoundError, JobStateConflictError
from core.models import JobKind, JobTarget

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


class EnqueueJobRequest(BaseModel):
    kind: JobKind
    source_id: str | None = None
    url: str | None = None
    postal_code: str | None = None
    entity_id: int | None = None
    address: str | None = None
    priority: int | None = Field(None, ge=1, le=10)
    max_retries: int | None = Field(None, ge=0)
    options: dict[str, Any] = Field(default_factory=dict)


def _queue(request: Request):
    return request.app.state.services.queue


@router.post("", status_code=201)
async def enqueue_job(body: EnqueueJobRequest, request: Request):
    target = JobTarget(
        source_id=body.source_id,
        url=body.url,
        postal_code=body.postal_code,
        entity_id=body.entity_id,
        address=body.address,
    )
    try:
        job_id = await _queue(request).enqueue(
            body.kind,
            target,
            priority=body.priority,
            max_retries=body.max_retries,
            options=body.options,
        )
    except ValueError as e:
        raise HTTPException(422, str(e))
    return {"id": job_id, "status": "pending"}


@router.get("/stats")
async def job_stats(request: Request):
    return await _queue(request).get_stats()


@router.post("/stale")
async def enqueue_stale(request: Request, max_jobs: int = Query(100, ge=1, le=1000)):
    ids = await _queue(request).bulk_enqueue_stale(max_jobs)
    return {"enqueued": len(ids), "job_ids": ids}


@router.get("/{job_id}")
async def job_status(job_id: str, request: Request):
    try:
        return await _queue(request).get_status(job_id)
    except JobNotFoundError:
        raise HTTPException(404, f"Job not found: {job_id}")


@router.post("/{job_id}/cancel")
async def cancel_job(job_id: str, request: Request):
    try:
        await _queue(request).cancel(job_id)
    except JobNotFoundError:
        raise HTTPException(404, f"Job not found: {job_id}")
    except JobStateConflictError as e:
        raise HTTPException(409, str(e))
    return {"id": job_id, "status": "failed", "error_message": "cancelled"}
