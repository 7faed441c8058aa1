import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.session import AsyncSessionLocal
from app.domain.errors import ConfigurationError
from app.scheduler.dispatcher import Dispatcher
from app.services.notifier import WebhookNotifier
from app.services.renderer import HttpRenderer
from app.settings import settings

logger = logging.getLogger(__name__)

class DispatcherPool:
    """N dispatchers sharing one renderer client and one notifier client."""

    def __init__(
        self,
        concurrency: Optional[int] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        if not settings.RENDERER_URL:
            raise ConfigurationError("DOCGEN_RENDERER_URL is not set")

        self.renderer = HttpRenderer(settings.RENDERER_URL)
        self.notifier = WebhookNotifier(settings.NOTIFY_RELAY_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS)
        count = concurrency if concurrency is not None else settings.DISPATCHER_CONCURRENCY
        self.dispatchers = [
            Dispatcher(session_factory or AsyncSessionLocal, self.renderer, self.notifier)
            for _ in range(count)
        ]

    async def start(self):
        for dispatcher in self.dispatchers:
            await dispatcher.start()
        logger.info(f"Started {len(self.dispatchers)} dispatchers against {settings.RENDERER_URL}")

    async def stop(self, grace: float = 10.0):
        # Signal every dispatcher first so they all drain within one grace period
        for dispatcher in self.dispatchers:
            dispatcher.request_stop()
        await asyncio.gather(*(dispatcher.wait_stopped(grace) for dispatcher in self.dispatchers))
        await self.renderer.close()
        await self.notifier.close()
