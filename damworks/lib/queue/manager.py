"""Build the configured job queue driver."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from damworks.lib.queue.base import JobQueue, load_driver
from damworks.lib.queue.database import DatabaseJobQueue

if TYPE_CHECKING:
    from damworks.config import QueueConfig


def create_job_queue(config: QueueConfig, session_maker: Any) -> JobQueue:
    """Instantiate the queue named by ``config.driver``.

    Custom drivers are constructed as ``cls(config, session_maker)``.
    """
    if config.driver == "database":
        return DatabaseJobQueue(session_maker, default_max_attempts=config.default_max_attempts)

    if ":" in config.driver:
        cls = load_driver(config.driver)
        return cls(config, session_maker)

    raise ValueError(
        f"Unknown queue driver '{config.driver}'. Use 'database' or 'module:ClassName'."
    )
