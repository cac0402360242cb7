"""Caller identity and the services that establish it."""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from damworks.config import AuthConfig

ADMIN_ROLE = "admin"
VIEWER_ROLE = "viewer"


@dataclass(frozen=True)
class Caller:
    """The authenticated principal behind a request."""

    id: str
    role: str = VIEWER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def has_role(self, role: str) -> bool:
        # Admins satisfy every role check
        return self.is_admin or self.role == role


@runtime_checkable
class AuthService(Protocol):
    def authenticate(self, headers: Mapping[str, str]) -> Caller | None: ...


def bearer_token(headers: Mapping[str, str]) -> str | None:
    value = headers.get("authorization") or headers.get("Authorization") or ""
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class TokenAuthService:
    """Static bearer tokens from configuration."""

    def __init__(self, config: AuthConfig) -> None:
        self._tokens = [(entry.token, Caller(entry.caller_id, entry.role)) for entry in config.tokens]

    def authenticate(self, headers: Mapping[str, str]) -> Caller | None:
        token = bearer_token(headers)
        if token is None:
            return None
        for known, caller in self._tokens:
            if hmac.compare_digest(known.encode(), token.encode()):
                return caller
        return None
