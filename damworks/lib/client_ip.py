"""Client IP extraction from ASGI scope."""

from litestar.types import Scope


def get_client_ip(scope: Scope) -> str | None:
    """Extract client IP, checking proxy headers first."""
    headers = dict(scope.get("headers", []))
    forwarded = headers.get(b"x-forwarded-for")
    if forwarded:
        return forwarded.decode().split(",")[0].strip()
    real_ip = headers.get(b"x-real-ip")
    if real_ip:
        return real_ip.decode().strip()
    client = scope.get("client")
    if client:
        return client[0]
    return None
