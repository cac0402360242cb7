"""Logging setup and an optional Pydantic Logfire tracing facade.

Tracing no-ops when logfire is not installed or not enabled in
configuration, so call sites never need to check.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from damworks.config import Settings

_logfire = None
_configured = False


def configure_logging(settings: Settings) -> None:
    """Configure the root logger from the ``logging`` section."""
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.logging.format, force=True)
    if settings.debug:
        logging.getLogger("damworks").setLevel(logging.DEBUG)


def is_available() -> bool:
    return _logfire is not None and _configured


def configure(settings: Settings) -> None:
    """Initialize logfire from LogfireConfig settings.

    No-ops if logfire is not installed or not enabled.
    """
    global _logfire, _configured

    if not settings.logfire.enabled:
        return

    try:
        import logfire as lf
    except ImportError:
        logging.getLogger(__name__).warning(
            "logfire is enabled but not installed; install damworks[logfire]"
        )
        return

    kwargs: dict[str, Any] = {
        "service_name": settings.logfire.service_name,
        "send_to_logfire": "if-token-present",
    }
    if settings.logfire.environment:
        kwargs["environment"] = settings.logfire.environment
    if settings.logfire.sample_rate != 1.0:
        kwargs["trace_sample_rate"] = settings.logfire.sample_rate
    if settings.logfire.console:
        kwargs["console"] = lf.ConsoleOptions()

    lf.configure(**kwargs)
    _logfire = lf
    _configured = True


def instrument_app(app):
    """Wrap an ASGI app with logfire instrumentation. Returns the app unchanged if unavailable."""
    if not is_available():
        return app
    return _logfire.instrument_asgi(app)


def instrument_sqlalchemy(engine) -> None:
    if is_available():
        _logfire.instrument_sqlalchemy(engine=engine)


def instrument_httpx(settings: Settings) -> bool:
    """Trace outbound calls when a Supabase store is configured.

    Returns True if instrumentation was installed.
    """
    if not is_available():
        return False
    if not any(store.backend == "supabase" for store in settings.storage.stores.values()):
        return False
    _logfire.instrument_httpx()
    return True


@contextmanager
def span(name: str, **attrs: Any):
    """Context manager that yields a logfire span, or None if unavailable."""
    if is_available():
        with _logfire.span(name, **attrs) as s:
            yield s
    else:
        yield None


def exception(msg: str, **kwargs: Any) -> bool:
    """Log an exception with traceback via logfire. Returns True if logged, False if unavailable."""
    if is_available():
        _logfire.exception(msg, **kwargs)
        return True
    return False
