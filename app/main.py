import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.settings import settings
from app.api.v1.jobs import router as jobs_router
from app.api.v1.admin import router as admin_router
from app.api.v1.metrics import router as metrics_router

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    from app.scheduler.service import SchedulerService
    from app.scheduler.workers import DispatcherPool
    from app.domain.errors import ConfigurationError

    logging.basicConfig(level=settings.LOG_LEVEL)

    # 1. Start Scheduler (Reaper/Ticker)
    scheduler = SchedulerService()
    await scheduler.start()

    # 2. Start in-process dispatchers when a renderer is configured.
    #    Without one the API still accepts and reports jobs; run app.worker elsewhere.
    pool = None
    if settings.DISPATCHER_CONCURRENCY > 0:
        try:
            pool = DispatcherPool()
            await pool.start()
        except ConfigurationError as e:
            logger.warning(f"Dispatchers not started: {e}")
            pool = None

    yield

    # Shutdown
    if pool:
        await pool.stop()
    await scheduler.stop()

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

app.include_router(jobs_router, prefix="/api/v1/jobs", tags=["jobs"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(metrics_router, tags=["metrics"])

@app.get("/health")
async def health():
    return {"status": "ok"}
