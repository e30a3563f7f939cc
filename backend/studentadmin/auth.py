"""Access guard and FastAPI security dependency.

Every protected operation is listed in `OPERATION_ROLES` with the set of
roles allowed to call it. `AccessGuard.authorize` validates the bearer
token and checks that its role claims intersect that set; the `require`
dependency factory wires the guard into route handlers:

    @app.post('/activities')
    def add_activity(..., identity: Identity = Depends(require('add_activity'))):

Operations missing from the table are denied. Login and the health probe
are the only routes that do not go through the guard.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Mapping, Optional, Tuple

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .exceptions import ForbiddenError, InvalidTokenError, UnauthenticatedError
from .tokens import TokenService, token_service

logger = logging.getLogger("studentadmin.auth")

ADMIN = "ADMIN"
USER = "USER"

ADMIN_ONLY: FrozenSet[str] = frozenset({ADMIN})
ANY_ROLE: FrozenSet[str] = frozenset({ADMIN, USER})

OPERATION_ROLES: Dict[str, FrozenSet[str]] = {
    "whoami": ANY_ROLE,
    "create_user": ADMIN_ONLY,
    "list_grades": ANY_ROLE,
    "get_grade": ANY_ROLE,
    "student_grade": ANY_ROLE,
    "add_grade": ADMIN_ONLY,
    "update_grade": ADMIN_ONLY,
    "delete_grade": ADMIN_ONLY,
    "list_memberships": ANY_ROLE,
    "get_membership": ANY_ROLE,
    "student_membership": ANY_ROLE,
    "add_membership": ADMIN_ONLY,
    "update_membership": ADMIN_ONLY,
    "override_membership_dates": ADMIN_ONLY,
    "delete_membership": ADMIN_ONLY,
    "list_activities": ADMIN_ONLY,
    "get_activity": ADMIN_ONLY,
    "add_activity": ADMIN_ONLY,
    "update_activity": ADMIN_ONLY,
    "delete_activity": ADMIN_ONLY,
    "list_students": ANY_ROLE,
    "get_student": ANY_ROLE,
    "student_activities": ANY_ROLE,
    "register_student": ANY_ROLE,
    "update_student": ANY_ROLE,
    "delete_student": ADMIN_ONLY,
}


@dataclass(frozen=True)
class Identity:
    """The authenticated caller attached to a request."""
    username: str
    roles: Tuple[str, ...]

    def has_role(self, role: str) -> bool:
        return role in self.roles


class AccessGuard:
    """Validate a token and enforce the role requirement of an operation."""

    def __init__(self, tokens: TokenService, permissions: Mapping[str, FrozenSet[str]] = OPERATION_ROLES):
        self.tokens = tokens
        self.permissions = permissions

    def authorize(self, token: Optional[str], operation: str) -> Identity:
        """Return the caller's identity or raise.

        Raises `UnauthenticatedError` when `token` is missing, invalid or
        expired, and `ForbiddenError` when the token's roles do not
        intersect the roles required by `operation`.
        """
        if not token:
            raise UnauthenticatedError()
        try:
            claims = self.tokens.validate_token(token)
        except InvalidTokenError as exc:
            logger.warning("rejected token for %s: %s", operation, exc.code)
            raise UnauthenticatedError(exc.message) from exc
        required = self.permissions.get(operation)
        if not required or required.isdisjoint(claims.roles):
            logger.warning("forbidden: user=%s operation=%s roles=%s", claims.subject, operation, ",".join(claims.roles))
            raise ForbiddenError(operation)
        return Identity(username=claims.subject, roles=claims.roles)


bearer_scheme = HTTPBearer(auto_error=False)
_guard = AccessGuard(token_service)


def get_access_guard() -> AccessGuard:
    """FastAPI dependency returning the process-wide guard."""
    return _guard


def require(operation: str):
    """Build a dependency that authorizes `operation` and yields the `Identity`."""
    if operation not in OPERATION_ROLES:
        raise KeyError(f"no role requirement declared for operation '{operation}'")

    def dependency(
        credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
        guard: AccessGuard = Depends(get_access_guard),
    ) -> Identity:
        token = credentials.credentials if credentials else None
        return guard.authorize(token, operation)

    dependency.__name__ = f"require_{operation}"
    return dependency
