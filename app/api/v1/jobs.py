from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.api.deps import DbSession
from app.commands.enqueue_job import enqueue_job, regenerate_job
from app.commands.cancel_job import cancel_job
from app.queries.jobs import get_job_status, list_recent_jobs, MAX_LIST_LIMIT
from app.domain.errors import InvalidConfigError, InvalidTransitionError, JobNotFoundError
from app.domain.states import JobStatus
from app.settings import settings

router = APIRouter()

class JobCreate(BaseModel):
    tenant_id: str
    subject_id: str
    kind: str
    # Validated by the enqueue command so errors map to InvalidConfigError
    config: Any
    notify_target: Optional[str] = None
    requested_by: str
    max_attempts: Optional[int] = Field(None, ge=1, le=settings.MAX_ATTEMPTS_CEILING)

class JobCreated(BaseModel):
    job_id: UUID

class JobStatusResponse(BaseModel):
    status: JobStatus
    result_url: Optional[str]
    last_error: Optional[str]
    attempts: int
    progress: int

class CancelResponse(BaseModel):
    cancelled: bool

class RegenerateRequest(BaseModel):
    requested_by: Optional[str] = None

class JobSummaryResponse(BaseModel):
    id: UUID
    tenant_id: str
    subject_id: str
    kind: str
    status: JobStatus
    attempts: int
    max_attempts: int
    last_error: Optional[str]
    result_url: Optional[str]
    created_at: datetime
    completed_at: Optional[datetime]

@router.post("", response_model=JobCreated, status_code=status.HTTP_201_CREATED)
async def create_job(payload: JobCreate, session: DbSession):
    try:
        job = await enqueue_job(
            session,
            tenant_id=payload.tenant_id,
            subject_id=payload.subject_id,
            kind=payload.kind,
            config=payload.config,
            notify_target=payload.notify_target,
            requested_by=payload.requested_by,
            max_attempts=payload.max_attempts,
        )
    except InvalidConfigError as e:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    await session.commit()
    return JobCreated(job_id=job.id)

@router.get("", response_model=list[JobSummaryResponse])
async def list_jobs(
    session: DbSession,
    tenant_id: str,
    status_filter: Optional[JobStatus] = Query(None, alias="status"),
    subject_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=MAX_LIST_LIMIT),
):
    summaries = await list_recent_jobs(
        session, tenant_id, status=status_filter, subject_id=subject_id, limit=limit
    )
    return [JobSummaryResponse(**vars(s)) for s in summaries]

@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: UUID, session: DbSession):
    try:
        view = await get_job_status(session, job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(**vars(view))

@router.post("/{job_id}/cancel", response_model=CancelResponse)
async def cancel(job_id: UUID, session: DbSession):
    try:
        await cancel_job(session, job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except InvalidTransitionError:
        await session.rollback()
        return CancelResponse(cancelled=False)

    await session.commit()
    return CancelResponse(cancelled=True)

@router.post("/{job_id}/regenerate", response_model=JobCreated, status_code=status.HTTP_201_CREATED)
async def regenerate(job_id: UUID, body: RegenerateRequest, session: DbSession):
    try:
        job = await regenerate_job(session, job_id, requested_by=body.requested_by)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except InvalidTransitionError as e:
        await session.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    await session.commit()
    return JobCreated(job_id=job.id)
