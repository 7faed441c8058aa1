import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Job, JobEventLog
from app.domain.errors import InvalidConfigError, InvalidTransitionError, JobNotFoundError
from app.domain.models import JobConfig
from app.domain.states import JobStatus, JobEvent, TERMINAL_STATUSES
from app.api.v1.metrics import JOB_ENQUEUED_TOTAL
from app.settings import settings

logger = logging.getLogger(__name__)

def validate_request(kind: str, config: Any, max_attempts: Optional[int]) -> tuple[str, dict[str, Any], int]:
    """
    Normalizes kind and config, resolves the attempt budget.
    Raises InvalidConfigError on anything the renderer could not use.
    """
    normalized_kind = (kind or "").strip().upper()
    if normalized_kind not in settings.DOCUMENT_KINDS:
        raise InvalidConfigError(f"Unknown document kind {kind!r}")

    if not isinstance(config, dict):
        raise InvalidConfigError("config must be an object")
    try:
        parsed = JobConfig.model_validate(config)
    except ValidationError as e:
        raise InvalidConfigError(f"Invalid config for {normalized_kind}: {e.errors()[0]['msg']}") from e

    budget = settings.DEFAULT_MAX_ATTEMPTS if max_attempts is None else max_attempts
    if budget < 1:
        raise InvalidConfigError("max_attempts must be positive")
    if budget > settings.MAX_ATTEMPTS_CEILING:
        raise InvalidConfigError(f"max_attempts may not exceed {settings.MAX_ATTEMPTS_CEILING}")

    return normalized_kind, parsed.model_dump(exclude_none=True), budget

async def enqueue_job(
    session: AsyncSession,
    tenant_id: str,
    subject_id: str,
    kind: str,
    config: dict[str, Any],
    notify_target: Optional[str] = None,
    requested_by: Optional[str] = None,
    max_attempts: Optional[int] = None,
    regenerated_from: Optional[UUID] = None,
) -> Job:
    """
    Inserts a new job in QUEUED state. No deduplication: callers that
    need idempotency must enforce it themselves.
    """
    if not (tenant_id or "").strip() or not (subject_id or "").strip():
        raise InvalidConfigError("tenant_id and subject_id are required")

    kind, config, budget = validate_request(kind, config, max_attempts)
    now = datetime.now(timezone.utc)

    job = Job(
        tenant_id=tenant_id,
        subject_id=subject_id,
        kind=kind,
        config=config,
        status=JobStatus.QUEUED,
        attempts=0,
        max_attempts=budget,
        notify_target=notify_target,
        requested_by=requested_by,
        regenerated_from=regenerated_from,
        available_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(job)
    await session.flush()

    session.add(JobEventLog(
        job_id=job.id,
        event_type=JobEvent.CREATED,
        timestamp=now,
        meta={"requested_by": requested_by, "kind": kind, "max_attempts": budget},
    ))
    await session.flush()

    JOB_ENQUEUED_TOTAL.labels(kind=kind).inc()
    logger.info("Enqueued %s job %s for tenant=%s subject=%s", kind, job.id, tenant_id, subject_id)
    return job

async def regenerate_job(
    session: AsyncSession,
    job_id: UUID,
    requested_by: Optional[str] = None,
) -> Job:
    """Queues a fresh run of a finished job with the same request."""
    source = await session.get(Job, job_id)
    if not source:
        raise JobNotFoundError(job_id)

    if source.status not in TERMINAL_STATUSES:
        raise InvalidTransitionError(source.status, "regenerate")

    return await enqueue_job(
        session,
        tenant_id=source.tenant_id,
        subject_id=source.subject_id,
        kind=source.kind,
        config=dict(source.config),
        notify_target=source.notify_target,
        requested_by=requested_by or source.requested_by,
        max_attempts=min(source.max_attempts, settings.MAX_ATTEMPTS_CEILING),
        regenerated_from=source.id,
    )
