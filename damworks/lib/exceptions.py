"""Domain errors and the Litestar handlers that render them as JSON."""

from __future__ import annotations

import logging

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR

from damworks.lib import observability

logger = logging.getLogger(__name__)


class DamError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.__class__.__doc__ or "Error"
        super().__init__(self.detail)


class ValidationError(DamError):
    """Request failed validation."""

    status_code = 400


class NotFoundError(DamError):
    """Resource not found."""

    status_code = 404


class AssetNotFoundError(NotFoundError):
    """Asset not found."""


class VersionNotFoundError(NotFoundError):
    """Asset version not found."""


class RenditionUnavailableError(NotFoundError):
    """Rendition unavailable."""


class AssetArchivedError(DamError):
    """Asset archived."""

    status_code = 410


class UploadTooLargeError(DamError):
    """Raised when an upload exceeds the configured size limit."""

    status_code = 413


def _json_error(status_code: int, detail: str) -> Response:
    return Response(
        content={"status_code": status_code, "detail": detail},
        status_code=status_code,
        media_type="application/json",
    )


def dam_error_handler(request: Request, exc: DamError) -> Response:
    """Render a domain error with its own status code."""
    return _json_error(exc.status_code, exc.detail)


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Handle framework HTTP exceptions (guards, parameter validation)."""
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _json_error(exc.status_code, detail)


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Handle unexpected exceptions without leaking internals."""
    if not observability.exception(
        "Unhandled exception on {method} {path}",
        method=request.method,
        path=request.url.path,
    ):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _json_error(HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


EXCEPTION_HANDLERS = {
    DamError: dam_error_handler,
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}
