"""Asset lifecycle hooks.

Extensions register callbacks against named events and the ingestion
services and worker fire them:

    from damworks.lib.hooks import action, AFTER_VERSION_PROCESSED

    @action(AFTER_VERSION_PROCESSED)
    async def reindex(version):
        ...

Callbacks may be sync or async; lower priorities run first.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

AFTER_VERSION_CREATED = "after_version_created"
AFTER_VERSION_PROCESSED = "after_version_processed"
AFTER_VERSION_FAILED = "after_version_failed"
BEFORE_ASSET_DELETE = "before_asset_delete"


class LifecycleHooks:
    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[int, int, Callable[..., Any]]]] = defaultdict(list)
        self._counter = 0

    def add_action(self, event: str, callback: Callable[..., Any], priority: int = 10) -> None:
        # The counter keeps registration order stable within a priority
        self._counter += 1
        self._handlers[event].append((priority, self._counter, callback))
        self._handlers[event].sort(key=lambda item: item[:2])

    def remove_action(self, event: str, callback: Callable[..., Any]) -> bool:
        handlers = self._handlers.get(event, [])
        for i, (_, _, registered) in enumerate(handlers):
            if registered is callback:
                handlers.pop(i)
                return True
        return False

    def has_action(self, event: str) -> bool:
        return bool(self._handlers.get(event))

    async def do_action(self, event: str, *args: Any, **kwargs: Any) -> None:
        """Run every callback for *event*.

        A failing callback is logged and does not stop the others or the
        operation that fired the event.
        """
        for _, _, callback in list(self._handlers.get(event, [])):
            try:
                result = callback(*args, **kwargs)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.warning("Hook %r failed for %s", callback, event, exc_info=True)

    def clear(self, event: str | None = None) -> None:
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event, None)


hooks = LifecycleHooks()


def action(event: str, priority: int = 10) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator registering a function on the global registry."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        hooks.add_action(event, func, priority)
        return func

    return decorator
