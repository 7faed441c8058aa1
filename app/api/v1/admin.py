from fastapi import APIRouter

from app.api.deps import DbSession
from app.commands.requeue_expired import requeue_expired_jobs
from app.settings import settings

router = APIRouter()

@router.post("/requeue_expired")
async def trigger_requeue_expired(session: DbSession, claim_timeout: int | None = None):
    timeout = claim_timeout if claim_timeout is not None else settings.CLAIM_TIMEOUT_SECONDS
    count = await requeue_expired_jobs(session, timeout)
    await session.commit()
    return {"requeued_count": count}
