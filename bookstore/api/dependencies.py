"""Shared API dependencies.

The authenticating gateway in front of this service resolves the caller
and forwards it as ``X-User-Id`` and ``X-User-Roles`` (comma separated);
``get_auth_context`` turns those headers into an ``AuthContext``.
"""

from dataclasses import dataclass, field
from typing import Annotated, NoReturn

from fastapi import Depends, HTTPException, Request, status

USER_ID_HEADER = "X-User-Id"
ROLES_HEADER = "X-User-Roles"
ADMIN_ROLE = "ADMIN"

# Error codes reported with something other than 400
_FORBIDDEN_CODES = {"ORDER_NOT_OWNED", "PAYMENT_NOT_OWNED", "FORBIDDEN"}
_UPSTREAM_CODES = {"PAYMENT_PROCESSOR_ERROR", "EMAIL_FAILED"}


@dataclass(frozen=True)
class AuthContext:
    """The calling user."""

    user_id: int
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def get_auth_context(request: Request) -> AuthContext:
    """Resolve the current user from gateway headers.

    Raises:
        HTTPException: 401 if the user id header is missing or malformed.
    """
    raw_user_id = request.headers.get(USER_ID_HEADER, "").strip()
    if not raw_user_id.isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHENTICATED",
                "message": f"Missing or invalid {USER_ID_HEADER} header",
            },
        )
    roles = frozenset(
        role.strip().upper().removeprefix("ROLE_")
        for role in request.headers.get(ROLES_HEADER, "").split(",")
        if role.strip()
    )
    return AuthContext(user_id=int(raw_user_id), roles=roles)


CurrentUser = Annotated[AuthContext, Depends(get_auth_context)]


def require_admin(auth: CurrentUser) -> AuthContext:
    """Allow only callers with the ADMIN role.

    Raises:
        HTTPException: 403 for non-admin callers.
    """
    if not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error_code": "FORBIDDEN", "message": "Admin role required"},
        )
    return auth


AdminUser = Annotated[AuthContext, Depends(require_admin)]


def status_for_error(error_code: str | None) -> int:
    """HTTP status for an application error code."""
    if not error_code:
        return status.HTTP_400_BAD_REQUEST
    if error_code.endswith("_NOT_FOUND"):
        return status.HTTP_404_NOT_FOUND
    if error_code in _FORBIDDEN_CODES:
        return status.HTTP_403_FORBIDDEN
    if error_code in _UPSTREAM_CODES:
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


def raise_error(error_code: str | None, message: str | None, fallback_code: str) -> NoReturn:
    """Raise the HTTPException matching a failed service result."""
    raise HTTPException(
        status_code=status_for_error(error_code),
        detail={
            "error_code": error_code or fallback_code,
            "message": message or "Request failed",
        },
    )
