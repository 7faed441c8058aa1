import uuid

import pytest

from app.commands.cancel_job import cancel_job
from app.commands.complete_job import complete_job
from app.commands.fail_job import fail_job
from app.domain.errors import InvalidTransitionError, JobNotFoundError
from app.domain.states import JobStatus
from app.settings import settings


@pytest.fixture
def complete(session_factory):
    async def _complete(job_id, ref="s3://docs/out.pdf", **kwargs):
        async with session_factory() as session:
            async with session.begin():
                return await complete_job(session, job_id, ref, **kwargs)
    return _complete


@pytest.fixture
def fail(session_factory):
    async def _fail(job_id, error="boom", **kwargs):
        async with session_factory() as session:
            async with session.begin():
                return await fail_job(session, job_id, error, **kwargs)
    return _fail


@pytest.fixture
def cancel(session_factory):
    async def _cancel(job_id):
        async with session_factory() as session:
            async with session.begin():
                return await cancel_job(session, job_id)
    return _cancel


async def test_failure_under_budget_requeues(enqueue, claim, fail, fetch):
    job = await enqueue(max_attempts=3)
    await claim()

    failed = await fail(job.id, "Renderer unavailable")

    assert failed.status == JobStatus.QUEUED
    stored = await fetch(job.id)
    assert stored.status == JobStatus.QUEUED
    assert stored.attempts == 1
    assert stored.last_error == "Renderer unavailable"
    assert stored.claim_token is None


async def test_failure_at_budget_is_terminal(enqueue, claim, fail, fetch):
    job = await enqueue(max_attempts=1)
    await claim()

    await fail(job.id, "layout engine crashed")

    stored = await fetch(job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.attempts == 1
    assert stored.last_error == "layout engine crashed"
    assert stored.result_url is None


async def test_requeued_job_is_claimable_again(enqueue, claim, fail):
    job = await enqueue(max_attempts=2)
    await claim()
    await fail(job.id)

    again = await claim()

    assert again.id == job.id
    assert again.attempts == 2


async def test_backoff_pushes_available_at_forward(monkeypatch, enqueue, claim, fail, fetch):
    monkeypatch.setattr(settings, "RETRY_BASE_DELAY_SECONDS", 30)
    job = await enqueue()
    await claim()

    await fail(job.id)

    stored = await fetch(job.id)
    assert stored.status == JobStatus.QUEUED
    assert await claim() is None


async def test_fail_requires_processing(enqueue, fail, fetch):
    job = await enqueue()

    with pytest.raises(InvalidTransitionError):
        await fail(job.id)
    assert (await fetch(job.id)).status == JobStatus.QUEUED


async def test_fail_with_stale_token_is_rejected(enqueue, claim, fail, fetch):
    job = await enqueue()
    await claim()

    with pytest.raises(InvalidTransitionError, match="claim lost"):
        await fail(job.id, claim_token=uuid.uuid4())
    assert (await fetch(job.id)).status == JobStatus.PROCESSING


async def test_complete_sets_result(enqueue, claim, complete, fetch):
    job = await enqueue()
    claimed = await claim()

    done = await complete(job.id, "s3://docs/claim-1.pdf", summary="4 sections", claim_token=claimed.claim_token)

    assert done.status == JobStatus.COMPLETED
    stored = await fetch(job.id)
    assert stored.result_url == "s3://docs/claim-1.pdf"
    assert stored.result_summary == "4 sections"
    assert stored.completed_at is not None
    assert stored.claim_token is None


async def test_terminal_job_is_never_mutated(enqueue, claim, complete, fail, cancel, fetch):
    job = await enqueue()
    await claim()
    await complete(job.id)

    with pytest.raises(InvalidTransitionError):
        await fail(job.id)
    with pytest.raises(InvalidTransitionError):
        await complete(job.id, "s3://docs/other.pdf")
    with pytest.raises(InvalidTransitionError):
        await cancel(job.id)

    stored = await fetch(job.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.result_url == "s3://docs/out.pdf"


async def test_complete_unknown_job(complete):
    with pytest.raises(JobNotFoundError):
        await complete(uuid.uuid4())


async def test_cancel_queued_job(enqueue, cancel, claim, fetch):
    job = await enqueue()

    cancelled = await cancel(job.id)

    assert cancelled.status == JobStatus.CANCELLED
    assert await claim() is None
    assert (await fetch(job.id)).status == JobStatus.CANCELLED


async def test_cancel_processing_job_is_refused(enqueue, claim, cancel, fetch):
    job = await enqueue()
    await claim()

    with pytest.raises(InvalidTransitionError):
        await cancel(job.id)
    stored = await fetch(job.id)
    assert stored.status == JobStatus.PROCESSING
    assert stored.attempts == 1


async def test_cancel_twice_is_refused(enqueue, cancel):
    job = await enqueue()
    await cancel(job.id)

    with pytest.raises(InvalidTransitionError):
        await cancel(job.id)


async def test_cancel_unknown_job(cancel):
    with pytest.raises(JobNotFoundError):
        await cancel(uuid.uuid4())
