from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job
from app.domain.errors import JobNotFoundError
from app.domain.models import JobStatusView, JobSummary
from app.domain.states import JobStatus

MAX_LIST_LIMIT = 100

async def get_job_status(session: AsyncSession, job_id: UUID) -> JobStatusView:
    job = await session.get(Job, job_id)
    if not job:
        raise JobNotFoundError(job_id)
    return JobStatusView.from_job(job)

async def list_recent_jobs(
    session: AsyncSession,
    tenant_id: str,
    status: Optional[JobStatus] = None,
    subject_id: Optional[str] = None,
    limit: int = 20,
) -> list[JobSummary]:
    """Newest first. limit is clamped to 1..MAX_LIST_LIMIT."""
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    stmt = select(Job).where(Job.tenant_id == tenant_id)
    if status is not None:
        stmt = stmt.where(Job.status == status)
    if subject_id is not None:
        stmt = stmt.where(Job.subject_id == subject_id)
    stmt = stmt.order_by(Job.created_at.desc(), Job.id.desc()).limit(limit)

    jobs = (await session.execute(stmt)).scalars().all()
    return [JobSummary.from_job(job) for job in jobs]
