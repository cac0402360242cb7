from damworks.worker.jobs import EXHAUSTED_HANDLERS, JOB_HANDLERS, JobContext, fail_version, process_version
from damworks.worker.runner import UnknownJobError, Worker

__all__ = [
    "EXHAUSTED_HANDLERS",
    "JOB_HANDLERS",
    "JobContext",
    "UnknownJobError",
    "Worker",
    "fail_version",
    "process_version",
]
