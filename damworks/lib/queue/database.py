"""Job queue persisted in the ``dam_job_queue`` table.

Workers poll with :meth:`DatabaseJobQueue.claim_next`. A claim is a plain
select followed by a conditional ``UPDATE ... WHERE status = 'pending'``; when
two workers race for the same row only one update touches it, and the loser
moves on to the next candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from damworks.db.models.job import JobStatus, ProcessingJob
from damworks.lib.queue.base import DEFAULT_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

CLAIM_RETRIES = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_timedelta(value: timedelta | float) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


async def count_jobs_by_status(session: AsyncSession) -> dict[str, int]:
    """Row counts per status, with every status present."""
    counts = {status.value: 0 for status in JobStatus}
    rows = await session.execute(
        select(ProcessingJob.status, func.count()).group_by(ProcessingJob.status)
    )
    for status, count in rows.all():
        counts[status] = int(count)
    return counts


@dataclass
class ReclaimResult:
    """Outcome of a stale-job sweep."""

    requeued: int = 0
    exhausted: list[ProcessingJob] = field(default_factory=list)


class DatabaseJobQueue:
    """Queue driver backed by the application database."""

    def __init__(self, session_maker: Any, default_max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self._session_maker = session_maker
        self.default_max_attempts = default_max_attempts

    async def enqueue(
        self,
        job_name: str,
        payload: dict[str, Any],
        run_at: datetime | None = None,
        max_attempts: int | None = None,
    ) -> UUID:
        job = ProcessingJob(
            job_name=job_name,
            payload=dict(payload),
            status=JobStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts or self.default_max_attempts,
            run_at=run_at or _now(),
        )
        async with self._session_maker() as session:
            session.add(job)
            await session.commit()
        logger.debug("Enqueued %s job %s", job_name, job.id)
        return job.id

    async def get(self, job_id: UUID) -> ProcessingJob | None:
        async with self._session_maker() as session:
            return await session.get(ProcessingJob, job_id)

    async def claim_next(self, worker_id: str) -> ProcessingJob | None:
        """Lock the oldest due pending job for *worker_id*.

        The claim itself counts as an attempt.
        """
        async with self._session_maker() as session:
            for _ in range(CLAIM_RETRIES):
                now = _now()
                candidate = await session.scalar(
                    select(ProcessingJob.id)
                    .where(
                        ProcessingJob.status == JobStatus.PENDING.value,
                        ProcessingJob.run_at <= now,
                    )
                    .order_by(ProcessingJob.run_at, ProcessingJob.created_at)
                    .limit(1)
                )
                if candidate is None:
                    return None

                result = await session.execute(
                    update(ProcessingJob)
                    .where(
                        ProcessingJob.id == candidate,
                        ProcessingJob.status == JobStatus.PENDING.value,
                    )
                    .values(
                        status=JobStatus.PROCESSING.value,
                        locked_at=now,
                        locked_by=worker_id,
                        attempts=ProcessingJob.attempts + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    await session.commit()
                    return await session.get(ProcessingJob, candidate, populate_existing=True)

                # Another worker got there first
                await session.rollback()
        return None

    async def mark_complete(self, job: ProcessingJob) -> None:
        async with self._session_maker() as session:
            await session.execute(
                update(ProcessingJob)
                .where(ProcessingJob.id == job.id)
                .values(
                    status=JobStatus.COMPLETE.value,
                    completed_at=_now(),
                    locked_at=None,
                    locked_by=None,
                    last_error=None,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def mark_failed(
        self,
        job: ProcessingJob,
        error: str,
        retry_delay: timedelta | float = 30.0,
    ) -> bool:
        """Record a failed attempt.

        Reschedules the job at ``now + retry_delay`` while attempts remain.
        Returns True when the job is exhausted and now terminally failed.
        """
        exhausted = job.attempts >= job.max_attempts
        values: dict[str, Any] = {
            "last_error": error,
            "locked_at": None,
            "locked_by": None,
        }
        if exhausted:
            values["status"] = JobStatus.FAILED.value
            values["completed_at"] = _now()
        else:
            values["status"] = JobStatus.PENDING.value
            values["run_at"] = _now() + _as_timedelta(retry_delay)

        async with self._session_maker() as session:
            await session.execute(
                update(ProcessingJob)
                .where(ProcessingJob.id == job.id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return exhausted

    async def reclaim_stale(self, older_than: timedelta | float) -> ReclaimResult:
        """Return jobs stuck in ``processing`` past the threshold to the queue.

        A worker that died mid-job already spent that attempt at claim time,
        so jobs with no attempts left are failed instead of requeued.
        """
        cutoff = _now() - _as_timedelta(older_than)
        result = ReclaimResult()
        async with self._session_maker() as session:
            stale = (
                await session.scalars(
                    select(ProcessingJob).where(
                        ProcessingJob.status == JobStatus.PROCESSING.value,
                        ProcessingJob.locked_at < cutoff,
                    )
                )
            ).all()
            for job in stale:
                reason = f"Reclaimed after stale lock held by {job.locked_by}"
                job.locked_at = None
                job.locked_by = None
                job.last_error = reason
                if job.attempts >= job.max_attempts:
                    job.status = JobStatus.FAILED.value
                    job.completed_at = _now()
                    result.exhausted.append(job)
                else:
                    job.status = JobStatus.PENDING.value
                    job.run_at = _now()
                    result.requeued += 1
            await session.commit()

        if stale:
            logger.warning(
                "Reclaimed %d stale job(s), %d exhausted",
                len(stale),
                len(result.exhausted),
            )
        return result

    async def count_by_status(self) -> dict[str, int]:
        async with self._session_maker() as session:
            return await count_jobs_by_status(session)
