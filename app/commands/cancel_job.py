import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job, JobEventLog
from app.domain.states import JobStatus, JobEvent
from app.api.v1.metrics import JOB_CANCELLED_TOTAL
from app.commands._guards import raise_for_rejected_update

logger = logging.getLogger(__name__)

async def cancel_job(
    session: AsyncSession,
    job_id: UUID,
    requested_by: Optional[str] = None,
) -> Job:
    """
    Cancels a job that has not been dispatched yet.
    A PROCESSING job cannot be cancelled mid-flight; any status other
    than QUEUED raises InvalidTransitionError and leaves the job untouched.
    """
    now = datetime.now(timezone.utc)

    stmt = (
        update(Job)
        .where(Job.id == job_id, Job.status == JobStatus.QUEUED)
        .values(status=JobStatus.CANCELLED, updated_at=now)
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    result = await session.execute(stmt)
    job = result.scalar_one_or_none()

    if not job:
        await raise_for_rejected_update(session, job_id, JobStatus.CANCELLED)

    session.add(JobEventLog(
        job_id=job.id,
        event_type=JobEvent.CANCELLED,
        timestamp=now,
        meta={"requested_by": requested_by},
    ))
    await session.flush()

    JOB_CANCELLED_TOTAL.inc()
    logger.info("Job %s cancelled by %s", job.id, requested_by or "unknown")
    return job
