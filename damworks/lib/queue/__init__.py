"""Background job queue."""

from damworks.lib.queue.base import DEFAULT_MAX_ATTEMPTS, PROCESS_VERSION_JOB, JobQueue
from damworks.lib.queue.database import DatabaseJobQueue, ReclaimResult
from damworks.lib.queue.manager import create_job_queue

__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "DatabaseJobQueue",
    "JobQueue",
    "PROCESS_VERSION_JOB",
    "ReclaimResult",
    "create_job_queue",
]
