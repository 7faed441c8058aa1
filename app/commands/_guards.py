from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job
from app.domain.errors import JobNotFoundError, InvalidTransitionError
from app.domain.states import JobStatus, can_transition

async def raise_for_rejected_update(
    session: AsyncSession,
    job_id: UUID,
    target: JobStatus,
    claim_token: Optional[UUID] = None,
) -> None:
    """
    Called after a guarded UPDATE matched no row: works out why and raises.
    """
    job = await session.get(Job, job_id, populate_existing=True)
    if not job:
        raise JobNotFoundError(job_id)
    if claim_token is not None and can_transition(job.status, target):
        # Edge is legal, so the claim guard rejected the write: the job was
        # reaped and possibly re-issued to another dispatcher
        raise InvalidTransitionError(f"{job.status} (claim lost)", target)
    raise InvalidTransitionError(job.status, target)
