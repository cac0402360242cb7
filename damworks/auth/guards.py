"""Litestar guards that authenticate the caller and check roles."""

from __future__ import annotations

from typing import Callable

from litestar.connection import ASGIConnection
from litestar.exceptions import NotAuthorizedException, PermissionDeniedException
from litestar.handlers.base import BaseRouteHandler

from damworks.auth.service import AuthService, Caller

Guard = Callable[[ASGIConnection, BaseRouteHandler], None]


def get_caller(connection: ASGIConnection) -> Caller:
    """Authenticate the connection, caching the result on its state.

    Raises:
        NotAuthorizedException: If no valid credentials were presented.
    """
    caller = getattr(connection.state, "caller", None)
    if caller is not None:
        return caller

    auth: AuthService = connection.app.state.auth
    caller = auth.authenticate(connection.headers)
    if caller is None:
        raise NotAuthorizedException("Authentication required")
    connection.state.caller = caller
    return caller


def require_caller(connection: ASGIConnection, _: BaseRouteHandler) -> None:
    """Any authenticated caller may proceed."""
    get_caller(connection)


def require_role(role: str) -> Guard:
    """Build a guard that rejects callers lacking *role* with 403."""

    def guard(connection: ASGIConnection, _: BaseRouteHandler) -> None:
        caller = get_caller(connection)
        if not caller.has_role(role):
            raise PermissionDeniedException(f"Requires the {role} role")

    return guard
