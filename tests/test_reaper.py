from datetime import datetime, timedelta, timezone

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import update, select

from app.commands.complete_job import complete_job
from app.commands.requeue_expired import requeue_expired_jobs, CLAIM_EXPIRED_MESSAGE
from app.db.models import Job, JobEventLog
from app.domain.errors import InvalidTransitionError
from app.domain.states import JobStatus, JobEvent
from app.scheduler.ticker import run_ticker


async def age_claim(session_factory, job_id, seconds=600):
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(Job)
                .where(Job.id == job_id)
                .values(claimed_at=datetime.now(timezone.utc) - timedelta(seconds=seconds))
            )


async def reap(session_factory, timeout=300):
    async with session_factory() as session:
        async with session.begin():
            return await requeue_expired_jobs(session, timeout)


async def test_stale_claim_is_requeued(session_factory, enqueue, claim, fetch):
    job = await enqueue(max_attempts=3)
    await claim()
    await age_claim(session_factory, job.id)

    assert await reap(session_factory) == 1

    stored = await fetch(job.id)
    assert stored.status == JobStatus.QUEUED
    assert stored.attempts == 1
    assert stored.last_error == CLAIM_EXPIRED_MESSAGE
    assert stored.claim_token is None


async def test_stale_claim_on_last_attempt_fails(session_factory, enqueue, claim, fetch):
    job = await enqueue(max_attempts=1)
    await claim()
    await age_claim(session_factory, job.id)

    assert await reap(session_factory) == 1

    stored = await fetch(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.attempts == 1


async def test_fresh_claims_are_left_alone(session_factory, enqueue, claim, fetch):
    job = await enqueue()
    await claim()

    assert await reap(session_factory) == 0
    assert (await fetch(job.id)).status == JobStatus.PROCESSING


async def test_late_completion_after_reap_is_rejected(session_factory, enqueue, claim, fetch):
    job = await enqueue()
    stale = await claim("worker-slow")
    await age_claim(session_factory, job.id)
    await reap(session_factory)
    fresh = await claim("worker-fast")

    async with session_factory() as session:
        with pytest.raises(InvalidTransitionError):
            async with session.begin():
                await complete_job(session, job.id, "s3://docs/late.pdf", claim_token=stale.claim_token)

    stored = await fetch(job.id)
    assert stored.status == JobStatus.PROCESSING
    assert stored.claimed_by == "worker-fast"
    assert stored.claim_token == fresh.claim_token
    assert stored.attempts == 2


async def test_reap_is_audited(session_factory, enqueue, claim):
    job = await enqueue()
    await claim("worker-gone")
    await age_claim(session_factory, job.id)
    await reap(session_factory)

    async with session_factory() as session:
        events = (await session.execute(
            select(JobEventLog).where(JobEventLog.job_id == job.id).order_by(JobEventLog.id)
        )).scalars().all()
    assert [e.event_type for e in events] == [JobEvent.CREATED, JobEvent.CLAIMED, JobEvent.CLAIM_EXPIRED]
    assert events[-1].meta["worker_id"] == "worker-gone"


async def test_ticker_reaps_and_refreshes_gauges(session_factory, enqueue, claim):
    stuck = await enqueue(tenant_id="org-ticker")
    await enqueue(tenant_id="org-ticker")
    await claim()
    await age_claim(session_factory, stuck.id)

    async with session_factory() as session:
        recovered = await run_ticker(session)

    assert recovered == 1
    assert REGISTRY.get_sample_value("docgen_jobs_inflight") == 0
    assert REGISTRY.get_sample_value("docgen_queue_depth", {"tenant_id": "org-ticker"}) == 2
