import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job, JobEventLog
from app.domain.retry import exhausted_reason
from app.domain.states import JobStatus, JobEvent
from app.api.v1.metrics import JOB_CLAIM_TOTAL, JOB_FAILURES

logger = logging.getLogger(__name__)

EXHAUSTED_MESSAGE = "Retry budget exhausted"

async def claim_job(session: AsyncSession, worker_id: str) -> Optional[Job]:
    """
    Atomically claims the oldest eligible queued job for the given worker.

    1. Queued jobs that already used their whole budget are failed in place,
       so nothing lingers QUEUED past max_attempts.
    2. The oldest queued job under budget is selected and flipped to
       PROCESSING in a single UPDATE guarded by status. Two workers racing
       for the same row cannot both match it: on Postgres the loser skips
       the locked row, elsewhere it re-evaluates the guard after the
       winner commits and gets nothing (or the next job).

    Caller owns the transaction and must commit.
    """
    now = datetime.now(timezone.utc)

    await _fail_exhausted(session, now)

    candidate = (
        select(Job.id)
        .where(
            Job.status == JobStatus.QUEUED,
            Job.attempts < Job.max_attempts,
            Job.available_at <= now,
        )
        .order_by(Job.created_at.asc(), Job.id.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )

    claim_token = uuid4()
    stmt = (
        update(Job)
        .where(
            Job.id == candidate,
            Job.status == JobStatus.QUEUED,
            Job.attempts < Job.max_attempts,
        )
        .values(
            status=JobStatus.PROCESSING,
            attempts=Job.attempts + 1,
            claim_token=claim_token,
            claimed_by=worker_id,
            claimed_at=now,
            updated_at=now,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )

    result = await session.execute(stmt)
    job = result.scalar_one_or_none()

    if not job:
        return None

    session.add(JobEventLog(
        job_id=job.id,
        event_type=JobEvent.CLAIMED,
        timestamp=now,
        meta={
            "worker_id": worker_id,
            "claim_token": str(claim_token),
            "attempt": job.attempts,
            "max": job.max_attempts,
        }
    ))
    await session.flush()

    JOB_CLAIM_TOTAL.labels(kind=job.kind).inc()
    logger.info("Worker %s claimed job %s (attempt %s/%s)", worker_id, job.id, job.attempts, job.max_attempts)
    return job

async def _fail_exhausted(session: AsyncSession, now: datetime) -> list[Job]:
    stmt = (
        update(Job)
        .where(
            Job.status == JobStatus.QUEUED,
            Job.attempts >= Job.max_attempts,
        )
        .values(
            status=JobStatus.FAILED,
            last_error=func.coalesce(Job.last_error, EXHAUSTED_MESSAGE),
            updated_at=now,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    result = await session.execute(stmt)
    exhausted = list(result.scalars().all())

    for job in exhausted:
        reason = exhausted_reason(job.attempts, job.max_attempts)
        logger.warning("Job %s left queued with no budget, failing it: %s", job.id, reason)
        JOB_FAILURES.labels(kind=job.kind, type="final").inc()
        session.add(JobEventLog(
            job_id=job.id,
            event_type=JobEvent.FAILED,
            timestamp=now,
            meta={"reason": reason, "attempts": job.attempts, "max": job.max_attempts},
        ))

    if exhausted:
        await session.flush()
    return exhausted
