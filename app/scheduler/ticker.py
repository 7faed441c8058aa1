from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job
from app.domain.states import JobStatus
from app.commands.requeue_expired import requeue_expired_jobs
from app.api.v1.metrics import QUEUE_DEPTH, JOBS_INFLIGHT
from app.settings import settings

async def run_ticker(session: AsyncSession) -> int:
    """
    Periodic maintenance tasks:
    1. Requeue stale claims (Reaper)
    2. Refresh queue depth and in-flight gauges
    Returns number of jobs recovered by the reaper.
    """
    recovered = await requeue_expired_jobs(session, settings.CLAIM_TIMEOUT_SECONDS)
    await session.commit()

    await refresh_gauges(session)
    return recovered

async def refresh_gauges(session: AsyncSession):
    # We do this periodically here instead of real-time increment/decrement to be robust.
    q_inflight = select(func.count()).select_from(Job).where(Job.status == JobStatus.PROCESSING)
    inflight_count = (await session.execute(q_inflight)).scalar() or 0
    JOBS_INFLIGHT.set(inflight_count)

    q_depth = (
        select(Job.tenant_id, func.count(Job.id))
        .where(Job.status == JobStatus.QUEUED)
        .group_by(Job.tenant_id)
    )
    rows = (await session.execute(q_depth)).all()

    # Drop tenants that drained since the last tick
    QUEUE_DEPTH.clear()
    for t_id, count in rows:
        QUEUE_DEPTH.labels(tenant_id=t_id).set(count)
