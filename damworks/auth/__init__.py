from damworks.auth.guards import get_caller, require_caller, require_role
from damworks.auth.service import ADMIN_ROLE, VIEWER_ROLE, AuthService, Caller, TokenAuthService

__all__ = [
    "ADMIN_ROLE",
    "AuthService",
    "Caller",
    "TokenAuthService",
    "VIEWER_ROLE",
    "get_caller",
    "require_caller",
    "require_role",
]
