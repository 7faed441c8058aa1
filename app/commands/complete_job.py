import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job, JobEventLog
from app.domain.states import JobStatus, JobEvent
from app.api.v1.metrics import JOB_COMPLETE_TOTAL
from app.commands._guards import raise_for_rejected_update

logger = logging.getLogger(__name__)

async def complete_job(
    session: AsyncSession,
    job_id: UUID,
    artifact_ref: str,
    summary: Optional[str] = None,
    claim_token: Optional[UUID] = None,
) -> Job:
    """
    Marks a PROCESSING job as COMPLETED and records the artifact.
    When claim_token is given, only the current claim holder may complete.
    Releases the claim.
    """
    now = datetime.now(timezone.utc)

    conditions = [Job.id == job_id, Job.status == JobStatus.PROCESSING]
    if claim_token is not None:
        conditions.append(Job.claim_token == claim_token)

    stmt = (
        update(Job)
        .where(*conditions)
        .values(
            status=JobStatus.COMPLETED,
            result_url=artifact_ref,
            result_summary=summary,
            completed_at=now,
            updated_at=now,
            claim_token=None,
        )
        .returning(Job)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    result = await session.execute(stmt)
    job = result.scalar_one_or_none()

    if not job:
        await raise_for_rejected_update(session, job_id, JobStatus.COMPLETED, claim_token)

    JOB_COMPLETE_TOTAL.labels(kind=job.kind).inc()

    session.add(JobEventLog(
        job_id=job.id,
        event_type=JobEvent.COMPLETED,
        timestamp=now,
        meta={
            "artifact_ref": artifact_ref,
            "attempt": job.attempts,
            "claim_token": str(claim_token) if claim_token else None,
        }
    ))

    await session.flush()
    logger.info("Job %s completed on attempt %s: %s", job.id, job.attempts, artifact_ref)
    return job
