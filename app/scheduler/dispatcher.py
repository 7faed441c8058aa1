import asyncio
import logging
import socket
import time
from typing import Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Job
from app.commands.claim_job import claim_job
from app.commands.complete_job import complete_job
from app.commands.fail_job import fail_job
from app.domain.errors import JobError, RenderFailure
from app.domain.states import JobStatus
from app.services.renderer import Renderer
from app.services.notifier import CompletionNotifier
from app.api.v1.metrics import RENDER_DURATION, NOTIFY_FAILURES
from app.settings import settings

logger = logging.getLogger(__name__)

class Dispatcher:
    """
    Claims one job at a time and runs it through the renderer.

    Each step (claim, outcome) commits in its own short transaction; the
    renderer call happens outside any transaction so a slow render never
    holds a row lock. Completion notices go out as background tasks so a
    slow relay never delays the next claim.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        renderer: Renderer,
        notifier: Optional[CompletionNotifier] = None,
        worker_id: Optional[str] = None,
        render_timeout: Optional[float] = None,
        notify_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.renderer = renderer
        self.notifier = notifier
        self.worker_id = worker_id or f"{socket.gethostname()}-{uuid4().hex[:8]}"
        self.render_timeout = render_timeout if render_timeout is not None else settings.RENDER_TIMEOUT_SECONDS
        self.notify_timeout = notify_timeout if notify_timeout is not None else settings.NOTIFY_TIMEOUT_SECONDS
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL_SECONDS
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._notifications: set[asyncio.Task] = set()

    async def start(self):
        self._task = asyncio.create_task(self.run())

    def request_stop(self):
        self.running = False
        self._shutdown_event.set()

    async def wait_stopped(self, grace: float = 10.0):
        """Lets an in-flight job finish for up to `grace` seconds, then cancels."""
        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=grace)
            except asyncio.TimeoutError:
                # The reaper will requeue whatever was left processing
                logger.warning(f"Dispatcher {self.worker_id} cancelled with a job in flight")
            except asyncio.CancelledError:
                pass
        await self.flush_notifications(timeout=grace)

    async def stop(self, grace: float = 10.0):
        self.request_stop()
        await self.wait_stopped(grace)

    async def flush_notifications(self, timeout: Optional[float] = None):
        """Waits for pending completion notices; whatever is still running after `timeout` is dropped."""
        if not self._notifications:
            return
        _, pending = await asyncio.wait(set(self._notifications), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Dispatcher {self.worker_id} dropped {len(pending)} pending notifications")

    async def run(self):
        # A stop requested before the task got scheduled still wins
        if self._shutdown_event.is_set():
            return
        self.running = True
        logger.info(f"Dispatcher {self.worker_id} started")

        try:
            while self.running:
                try:
                    job = await self.run_once()
                    if job is None:
                        await self._idle(self.poll_interval)
                except Exception as e:
                    logger.exception("Error in dispatcher loop %s: %s", self.worker_id, e)
                    await self._idle(5.0)
        finally:
            logger.info(f"Dispatcher {self.worker_id} stopped")

    async def _idle(self, seconds: float):
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> Optional[Job]:
        """
        Claims and processes at most one job.
        Returns the job in its post-attempt state, or None if nothing was eligible.
        """
        async with self.session_factory() as session:
            async with session.begin():
                job = await claim_job(session, self.worker_id)

        if job is None:
            return None

        return await self.process(job)

    async def process(self, job: Job) -> Job:
        error: Optional[str] = None
        result = None
        started = time.monotonic()

        try:
            result = await asyncio.wait_for(
                self.renderer.render(job.kind, job.subject_id, job.config),
                timeout=self.render_timeout,
            )
            if result is None or not result.artifact_ref:
                raise RenderFailure("Renderer returned no artifact")
        except asyncio.TimeoutError:
            error = f"Render timed out after {self.render_timeout}s"
        except RenderFailure as e:
            error = str(e)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
        finally:
            RENDER_DURATION.labels(kind=job.kind).observe(time.monotonic() - started)

        if error is not None:
            return await self._record_failure(job, error)

        finished = await self._record_success(job, result.artifact_ref, result.summary)
        if finished.status == JobStatus.COMPLETED and finished.notify_target and self.notifier is not None:
            task = asyncio.create_task(self._notify(finished))
            self._notifications.add(task)
            task.add_done_callback(self._notifications.discard)
        return finished

    async def _record_failure(self, job: Job, error: str) -> Job:
        logger.error(f"Job {job.id} render failed: {error}")
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await fail_job(session, job.id, error, claim_token=job.claim_token)
        except JobError as e:
            # Claim was lost to the reaper; whoever holds the job now owns its outcome
            logger.warning("Could not record failure for job %s: %s", job.id, e)
            return job

    async def _record_success(self, job: Job, artifact_ref: str, summary: Optional[str]) -> Job:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await complete_job(
                        session, job.id, artifact_ref, summary=summary, claim_token=job.claim_token
                    )
        except JobError as e:
            logger.warning("Could not record completion for job %s: %s", job.id, e)
            return job

    async def _notify(self, job: Job):
        try:
            await asyncio.wait_for(
                self.notifier.notify(job.notify_target, job.id, job.result_url),
                timeout=self.notify_timeout,
            )
            logger.info("Notified %s about job %s", job.notify_target, job.id)
        except Exception as e:
            # Best-effort: the job stays completed whatever happens here
            NOTIFY_FAILURES.inc()
            logger.warning("Notification for job %s to %s failed: %s", job.id, job.notify_target, e)
