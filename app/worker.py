import asyncio
import logging
import signal

from app.scheduler.service import SchedulerService
from app.scheduler.workers import DispatcherPool
from app.settings import settings

logger = logging.getLogger(__name__)

async def main():
    pool = DispatcherPool()
    scheduler = SchedulerService()
    shutdown = asyncio.Event()

    # Setup signal handlers
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows support
            pass

    await scheduler.start()
    await pool.start()
    try:
        await shutdown.wait()
        logger.info("Shutdown signal received")
    finally:
        await pool.stop()
        await scheduler.stop()

if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    asyncio.run(main())
