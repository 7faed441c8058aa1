import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.session import AsyncSessionLocal
from app.scheduler.ticker import run_ticker
from app.settings import settings

logger = logging.getLogger(__name__)

class SchedulerService:
    """
    Runs the reaper ticker on every instance. The reaper only issues
    guarded UPDATEs, so concurrent instances cannot double-recover a job.
    """

    def __init__(
        self,
        interval: Optional[int] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.interval = interval if interval is not None else settings.REAPER_INTERVAL_SECONDS
        self.session_factory = session_factory or AsyncSessionLocal
        self._running = False
        self._task = None

    async def start(self):
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Scheduler service started.")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Scheduler service stopped.")

    async def _loop(self):
        while self._running:
            try:
                async with self.session_factory() as session:
                    recovered = await run_ticker(session)
                if recovered:
                    logger.info(f"Reaper recovered {recovered} stale claims.")
            except Exception as e:
                logger.error(f"Error in scheduler ticker: {e}", exc_info=True)

            await asyncio.sleep(self.interval)
