import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job, JobEventLog
from app.domain.states import JobStatus, JobEvent
from app.api.v1.metrics import REAPER_RECOVERED_JOBS, JOB_FAILURES

logger = logging.getLogger(__name__)

CLAIM_EXPIRED_MESSAGE = "Claim expired (dispatcher crashed or stalled)"

async def requeue_expired_jobs(session: AsyncSession, claim_timeout: int) -> int:
    """
    Finds PROCESSING jobs whose claim is older than claim_timeout seconds
    and treats each one as a failed attempt: back to QUEUED while budget
    remains, FAILED otherwise. Clearing claim_token makes a late
    completion from the original dispatcher bounce.
    Returns number of jobs recovered.
    """
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=claim_timeout)

    stale = [
        Job.status == JobStatus.PROCESSING,
        Job.claimed_at < cutoff,
    ]

    requeue_stmt = (
        update(Job)
        .where(*stale, Job.attempts < Job.max_attempts)
        .values(
            status=JobStatus.QUEUED,
            last_error=CLAIM_EXPIRED_MESSAGE,
            available_at=now,
            updated_at=now,
            claim_token=None,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    requeued = list((await session.execute(requeue_stmt)).scalars().all())

    fail_stmt = (
        update(Job)
        .where(*stale, Job.attempts >= Job.max_attempts)
        .values(
            status=JobStatus.FAILED,
            last_error=CLAIM_EXPIRED_MESSAGE,
            updated_at=now,
            claim_token=None,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    failed = list((await session.execute(fail_stmt)).scalars().all())

    for job in requeued + failed:
        logger.warning(
            "Recovered stale claim on job %s (worker=%s, attempt %s/%s) -> %s",
            job.id, job.claimed_by, job.attempts, job.max_attempts, job.status,
        )
        session.add(JobEventLog(
            job_id=job.id,
            event_type=JobEvent.CLAIM_EXPIRED,
            timestamp=now,
            meta={"worker_id": job.claimed_by, "attempts": job.attempts, "outcome": str(job.status)},
        ))

    for job in failed:
        JOB_FAILURES.labels(kind=job.kind, type="final").inc()

    count = len(requeued) + len(failed)
    if count > 0:
        REAPER_RECOVERED_JOBS.inc(count)
        await session.flush()
    return count
