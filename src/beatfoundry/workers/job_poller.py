"""Synthesis job status polling.

One JobStatusPoller per outstanding job, each running as its own asyncio task so
a slow status query never delays other jobs. JobTracker owns those tasks: it
starts them, restarts crashed ones after a fixed delay, cancels them when a
callback completes the job first, and re-creates them at startup for
provisional tracks left behind by a previous process.

Polling has no attempt cap. A job that never reaches a terminal status keeps
polling until JobTracker.cancel() is called or the process stops.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from beatfoundry.models.generation_job import GenerationJob, InvalidStateTransition
from beatfoundry.models.produced_asset import ProducedAsset
from beatfoundry.models.thinking_event import ThinkingEvent
from beatfoundry.services.completion import JobCompletionHandler
from beatfoundry.services.events import EventChannel
from beatfoundry.services.exceptions import ServiceError
from beatfoundry.services.suno.client import SunoClient
from beatfoundry.services.suno.payloads import extract_status, extract_status_assets
from beatfoundry.uow import UnitOfWorkFactory

logger = structlog.get_logger(__name__)

ProgressSink = Callable[[GenerationJob], None]
SuccessHandler = Callable[[GenerationJob, list[ProducedAsset]], Awaitable[Any]]

RESTART_DELAY = 1  # Fixed delay between poller restarts after a crash
STATUS_EVENT_STEP = "generation_status"


class JobStatusPoller:
    """Drives one GenerationJob from submission to a terminal status.

    Every tick queries the status endpoint once and reports the observed status
    to the progress sink. On a success-terminal status the assets are handed to
    ``on_success`` exactly once; on a failure-terminal status polling stops with
    no persistence. Transport errors are logged and the next tick retries.
    """

    def __init__(
        self,
        job: GenerationJob,
        suno: SunoClient,
        on_success: SuccessHandler,
        progress_sink: Optional[ProgressSink] = None,
        interval: float = 10.0,
    ):
        self.job = job
        self.suno = suno
        self.on_success = on_success
        self.progress_sink = progress_sink
        self.interval = interval
        self._dispatched = False

    @property
    def done(self) -> bool:
        return self.job.is_terminal

    @property
    def dispatched(self) -> bool:
        return self._dispatched

    async def poll_once(self) -> Optional[str]:
        """Run one tick: query, observe, report, dispatch.

        Returns:
            Status observed in this tick, None if the query failed or the job was
            already terminal
        """
        if self.job.is_terminal:
            return None

        try:
            envelope = await self.suno.get_record_info(self.job.job_id)
        except ServiceError as e:
            logger.warning(
                "job.poll.query_failed",
                job_id=self.job.job_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        status = extract_status(envelope)
        if not status:
            logger.warning("job.poll.no_status", job_id=self.job.job_id, code=envelope.get("code"))
            return None

        try:
            changed = self.job.observe(status)
        except InvalidStateTransition:
            return None

        logger.info("job.poll.status", job_id=self.job.job_id, status=status, changed=changed)
        self._report()

        if self.job.succeeded and not self._dispatched:
            self._dispatched = True
            assets = extract_status_assets(envelope, self.job.job_id)
            logger.info("job.poll.succeeded", job_id=self.job.job_id, assets=len(assets))
            await self.on_success(self.job, assets)
        elif self.job.failed:
            logger.warning("job.poll.failed", job_id=self.job.job_id, status=status)

        return status

    async def run(self) -> GenerationJob:
        """Poll on a fixed interval until the job reaches a terminal status."""
        logger.info("job.poll.started", job_id=self.job.job_id, interval=self.interval)
        while not self.job.is_terminal:
            await asyncio.sleep(self.interval)
            await self.poll_once()
        logger.info("job.poll.stopped", job_id=self.job.job_id, status=self.job.status)
        return self.job

    def _report(self) -> None:
        if self.progress_sink is None:
            return
        try:
            self.progress_sink(self.job)
        except Exception as e:
            logger.warning("job.poll.progress_sink_failed", job_id=self.job.job_id, error=str(e))


class JobTracker:
    """Registry of active pollers, one per job id."""

    def __init__(
        self,
        suno: SunoClient,
        completion: JobCompletionHandler,
        events: Optional[EventChannel] = None,
        interval: float = 10.0,
    ):
        self.suno = suno
        self.completion = completion
        self.events = events
        self.interval = interval
        self._pollers: dict[str, JobStatusPoller] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._shutdown = asyncio.Event()

    def get(self, job_id: str) -> Optional[GenerationJob]:
        poller = self._pollers.get(job_id)
        return poller.job if poller else None

    def is_polling(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def start_polling(self, job_id: str, title: str, foundry_id: str) -> GenerationJob:
        """Begin polling a job; a job that is already tracked is left as is."""
        existing = self._pollers.get(job_id)
        if existing is not None:
            return existing.job

        job = GenerationJob(job_id=job_id, foundry_id=foundry_id, title=title)
        poller = JobStatusPoller(
            job,
            self.suno,
            on_success=self._complete,
            progress_sink=self._publish_progress,
            interval=self.interval,
        )
        self._pollers[job_id] = poller
        self._spawn(poller)
        logger.info("job.tracking.started", job_id=job_id, foundry_id=foundry_id, title=title)
        return job

    def cancel(self, job_id: str) -> bool:
        """Stop polling a job (callback completed it, or an operator gave up on it).

        A poller that already handed its assets to the completion handler is left
        to finish so reconciliation is never interrupted halfway.

        Returns:
            True if a poller was stopped
        """
        poller = self._pollers.get(job_id)
        if poller is None:
            return False
        if poller.dispatched:
            logger.info("job.tracking.completing", job_id=job_id)
            return False

        del self._pollers[job_id]
        task = self._tasks.pop(job_id, None)
        if task is not None and not task.done():
            task.cancel()
        logger.info("job.tracking.cancelled", job_id=job_id, status=poller.job.status)
        return True

    async def shutdown(self) -> None:
        """Cancel all pollers and wait for them to finish."""
        self._shutdown.set()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._pollers.clear()

    async def resume_pending(self, uow_factory: UnitOfWorkFactory, limit: int = 100) -> int:
        """Restart pollers for provisional tracks left by a previous process.

        Returns:
            Number of jobs resumed
        """
        async with await uow_factory() as uow:
            pending = await uow.tracks.get_pending_provisional(limit=limit)

        resumed = 0
        for track in pending:
            if track.source_job_id and track.source_job_id not in self._pollers:
                self.start_polling(track.source_job_id, track.name, track.foundry_id)
                resumed += 1

        if resumed:
            logger.info("job.recovery", resumed_jobs=resumed)
        return resumed

    def _spawn(self, poller: JobStatusPoller) -> None:
        job_id = poller.job.job_id
        task = asyncio.create_task(poller.run(), name=f"job-poller-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._on_done(poller, t))

    def _on_done(self, poller: JobStatusPoller, task: asyncio.Task) -> None:
        job_id = poller.job.job_id
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

        if task.cancelled() or self._shutdown.is_set():
            return

        exc = task.exception()
        if poller.done:
            # Terminal jobs leave the registry
            if self._pollers.get(job_id) is poller:
                del self._pollers[job_id]
            if exc is not None:
                logger.error(
                    "job.poll.completion_failed",
                    job_id=job_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            return
        if exc is None:
            return

        logger.error(
            "job.poll.crashed",
            job_id=job_id,
            error=str(exc),
            error_type=type(exc).__name__,
            retry_in_seconds=RESTART_DELAY,
            exc_info=exc,
        )

        async def restart() -> None:
            await asyncio.sleep(RESTART_DELAY)
            if self._shutdown.is_set() or self._pollers.get(job_id) is not poller:
                return
            logger.info("job.poll.restarting", job_id=job_id)
            self._spawn(poller)

        asyncio.create_task(restart())

    async def _complete(self, job: GenerationJob, assets: list[ProducedAsset]) -> None:
        await self.completion.complete(job.foundry_id, job.job_id, assets)

    def _publish_progress(self, job: GenerationJob) -> None:
        if self.events is None:
            return
        event = ThinkingEvent(
            foundry_id=job.foundry_id, step=STATUS_EVENT_STEP, content=job.snapshot()
        )
        self.events.publish(job.foundry_id, event.to_wire())
