import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job, JobEventLog
from app.domain.states import JobStatus, JobEvent
from app.domain.retry import next_available_at
from app.api.v1.metrics import JOB_FAILURES
from app.commands._guards import raise_for_rejected_update

logger = logging.getLogger(__name__)

async def fail_job(
    session: AsyncSession,
    job_id: UUID,
    error: str,
    claim_token: Optional[UUID] = None,
) -> Job:
    """
    Records a failed attempt on a PROCESSING job.
    Requeues while attempts < max_attempts, otherwise fails it for good.
    The attempt was already counted when the job was claimed.

    Both outcomes are guarded UPDATEs with the retry rule in the WHERE
    clause, so the decision and the write cannot drift apart.
    """
    now = datetime.now(timezone.utc)

    conditions = [Job.id == job_id, Job.status == JobStatus.PROCESSING]
    if claim_token is not None:
        conditions.append(Job.claim_token == claim_token)

    final_stmt = (
        update(Job)
        .where(*conditions, Job.attempts >= Job.max_attempts)
        .values(status=JobStatus.FAILED, last_error=error, updated_at=now, claim_token=None)
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    job = (await session.execute(final_stmt)).scalar_one_or_none()
    next_event = JobEvent.FAILED

    if not job:
        retry_stmt = (
            update(Job)
            .where(*conditions, Job.attempts < Job.max_attempts)
            .values(status=JobStatus.QUEUED, last_error=error, updated_at=now, available_at=now, claim_token=None)
            .returning(Job)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        job = (await session.execute(retry_stmt)).scalar_one_or_none()
        next_event = JobEvent.RETRIED

        if not job:
            await raise_for_rejected_update(session, job_id, JobStatus.QUEUED, claim_token)

        # Backoff needs the attempt count; the row stays locked until commit
        job.available_at = next_available_at(job.attempts, now)

    JOB_FAILURES.labels(
        kind=job.kind,
        type="retryable" if next_event == JobEvent.RETRIED else "final",
    ).inc()

    session.add(JobEventLog(
        job_id=job.id,
        event_type=next_event,
        timestamp=now,
        meta={
            "error": error,
            "attempts": job.attempts,
            "max": job.max_attempts,
            "claim_token": str(claim_token) if claim_token else None,
        }
    ))

    await session.flush()
    logger.warning(
        "Job %s attempt %s/%s failed (%s): %s",
        job.id, job.attempts, job.max_attempts, job.status, error,
    )
    return job
