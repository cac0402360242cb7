"""Read-only views over the job queue table."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from damworks.db.models import JobStatus, ProcessingJob
from damworks.lib.queue.database import count_jobs_by_status

METRIC_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.FAILED)


async def get_queue_metrics(db_session: AsyncSession) -> dict[str, Any]:
    """Counts of pending, processing and failed jobs with a UTC timestamp."""
    counts = await count_jobs_by_status(db_session)

    metrics: dict[str, Any] = {s.value: counts[s.value] for s in METRIC_STATUSES}
    metrics["timestamp"] = datetime.now(timezone.utc).isoformat()
    return metrics


async def list_failed_jobs(db_session: AsyncSession, limit: int = 50) -> list[ProcessingJob]:
    """Most recently failed jobs, for the worker CLI."""
    return list(
        (
            await db_session.scalars(
                select(ProcessingJob)
                .where(ProcessingJob.status == JobStatus.FAILED.value)
                .order_by(ProcessingJob.updated_at.desc())
                .limit(limit)
            )
        ).all()
    )
