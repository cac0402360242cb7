"""Job queue interface."""

from __future__ import annotations

import importlib
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

PROCESS_VERSION_JOB = "dam.process-version"
DEFAULT_MAX_ATTEMPTS = 5


def load_driver(spec: str) -> type:
    """Import a queue driver class from a 'module:ClassName' string."""
    if ":" not in spec:
        raise ValueError(
            f"Invalid queue driver '{spec}': must be in format 'module:ClassName'"
        )
    parts = spec.split(":")
    if len(parts) != 2:
        raise ValueError(
            f"Invalid queue driver '{spec}': must contain exactly one colon"
        )
    module_path, class_name = parts
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


@runtime_checkable
class JobQueue(Protocol):
    """Anything that can accept a named job with a JSON payload.

    Delivery is at-least-once and unordered across job names.
    """

    async def enqueue(
        self,
        job_name: str,
        payload: dict[str, Any],
        run_at: datetime | None = None,
        max_attempts: int | None = None,
    ) -> UUID: ...
