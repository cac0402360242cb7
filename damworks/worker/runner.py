"""Polling worker loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import uuid4

from damworks.config import Settings
from damworks.db.models import ProcessingJob
from damworks.lib.derivatives import DerivativeKind, Strategy, default_strategies
from damworks.lib.observability import span
from damworks.lib.queue.database import DatabaseJobQueue, ReclaimResult
from damworks.lib.storage.manager import StorageManager
from damworks.lib.tempfiles import resolve_temp_root, sweep_temp_dir
from damworks.worker.jobs import (
    EXHAUSTED_HANDLERS,
    JOB_HANDLERS,
    ExhaustedHandler,
    JobContext,
    JobHandler,
)


class UnknownJobError(LookupError):
    """No handler is registered for the job name."""


class Worker:
    """Claims due jobs one at a time and runs their handlers.

    Several workers may poll the same queue; claims never overlap.
    """

    def __init__(
        self,
        session_maker: Any,
        storage: StorageManager,
        queue: DatabaseJobQueue,
        settings: Settings,
        logger: logging.Logger | None = None,
        handlers: dict[str, JobHandler] | None = None,
        exhausted_handlers: dict[str, ExhaustedHandler] | None = None,
        strategies: dict[DerivativeKind, Strategy] | None = None,
    ) -> None:
        self.settings = settings
        self.queue = queue
        self.storage = storage
        self.worker_id = settings.worker.worker_id or f"dam-worker-{uuid4()}"
        self.logger = logger or logging.getLogger("damworks.worker")
        self.handlers = dict(JOB_HANDLERS if handlers is None else handlers)
        self.exhausted_handlers = dict(
            EXHAUSTED_HANDLERS if exhausted_handlers is None else exhausted_handlers
        )
        self.temp_root = resolve_temp_root(settings.worker.temp_dir)
        self.context = JobContext(
            session_maker=session_maker,
            storage=storage,
            settings=settings,
            worker_id=self.worker_id,
            temp_root=self.temp_root,
            logger=self.logger,
            strategies=strategies or default_strategies(),
        )

    async def run_once(self) -> bool:
        """Process at most one due job. Returns False when the queue was idle."""
        job = await self.queue.claim_next(self.worker_id)
        if job is None:
            return False

        extra = {"jobId": str(job.id), "jobName": job.job_name, "attempt": job.attempts}
        handler = self.handlers.get(job.job_name)
        try:
            if handler is None:
                raise UnknownJobError(f"No handler registered for job {job.job_name!r}")
            with span("dam.job", job_name=job.job_name, job_id=str(job.id)):
                await handler(self.context, job.payload)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            exhausted = await self.queue.mark_failed(job, error, self.settings.worker.retry_delay)
            if exhausted:
                self.logger.error("Job exhausted its attempts", extra={**extra, "error": error})
                await self._handle_exhausted(job, error)
            else:
                self.logger.warning("Job failed, will retry", extra={**extra, "error": error})
            return True

        await self.queue.mark_complete(job)
        self.logger.info("Job complete", extra=extra)
        return True

    async def _handle_exhausted(self, job: ProcessingJob, error: str) -> None:
        handler = self.exhausted_handlers.get(job.job_name)
        if handler is None:
            return
        try:
            await handler(self.context, job.payload, error)
        except Exception:
            self.logger.exception("Exhausted-job handler failed", extra={"jobId": str(job.id)})

    async def reclaim_stale(self) -> ReclaimResult:
        """Requeue jobs whose worker stopped heartbeating, failing exhausted ones."""
        result = await self.queue.reclaim_stale(self.settings.worker.stale_after)
        for job in result.exhausted:
            await self._handle_exhausted(job, job.last_error or "Stale job exhausted")
        return result

    def sweep_temp(self) -> int:
        return sweep_temp_dir(self.temp_root, self.settings.worker.temp_max_age)

    async def maintenance(self) -> None:
        await self.reclaim_stale()
        await asyncio.to_thread(self.sweep_temp)

    async def run(self, shutdown_event: asyncio.Event | None = None) -> None:
        """Poll until *shutdown_event* is set."""
        shutdown = shutdown_event or asyncio.Event()
        cfg = self.settings.worker
        loop = asyncio.get_running_loop()
        last_maintenance: float | None = None

        self.logger.info("Worker started", extra={"workerId": self.worker_id})
        while not shutdown.is_set():
            worked = False
            try:
                now = loop.time()
                if last_maintenance is None or now - last_maintenance >= cfg.reclaim_interval:
                    last_maintenance = now
                    await self.maintenance()
                worked = await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                self.logger.exception("Worker loop error", extra={"workerId": self.worker_id})

            if not worked:
                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=cfg.poll_interval)
                except asyncio.TimeoutError:
                    pass
        self.logger.info("Worker stopped", extra={"workerId": self.worker_id})
