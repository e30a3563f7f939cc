"""Issue and validate signed session tokens.

Tokens are HS256 JWTs carrying the username (`sub`), the caller's role
names (`roles`), and `iat`/`exp` timestamps. Nothing is stored server
side: a token stays valid until its expiry and cannot be revoked
earlier.

Validation always verifies the signature before looking at any claim,
so an expiry timestamp is only trusted once the payload is known to be
ours.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple

import jwt

from .config import settings
from .exceptions import InvalidSignatureError, TokenExpiredError

JWT_ALGORITHM = "HS256"
TOKEN_TTL = timedelta(days=1)


@dataclass(frozen=True)
class TokenClaims:
    """The verified contents of a session token."""
    subject: str
    roles: Tuple[str, ...]
    issued_at: datetime
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Stateless token issuer/validator bound to one signing secret."""

    def __init__(self, secret: str, algorithm: str = JWT_ALGORITHM):
        self._secret = secret
        self._algorithm = algorithm

    def issue_token(self, username: str, roles: Iterable[str], now: Optional[datetime] = None) -> str:
        """Return a signed token for `username` expiring one day after `now`."""
        issued = now or _utcnow()
        payload = {
            "sub": username,
            "roles": sorted(set(roles)),
            "iat": int(issued.timestamp()),
            "exp": int((issued + TOKEN_TTL).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def validate_token(self, token: str, now: Optional[datetime] = None) -> TokenClaims:
        """Verify `token` and return its claims.

        Raises `InvalidSignatureError` for anything that fails signature
        verification or lacks the expected claims, and `TokenExpiredError`
        when `now` is at or past the token's expiry.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": ["sub", "roles", "iat", "exp"]},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidSignatureError() from exc

        exp = payload.get("exp")
        iat = payload.get("iat")
        roles = payload.get("roles")
        if not isinstance(exp, (int, float)) or not isinstance(iat, (int, float)):
            raise InvalidSignatureError("invalid token timestamps")
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise InvalidSignatureError("invalid token roles")

        current = now or _utcnow()
        if current.timestamp() >= exp:
            raise TokenExpiredError()
        return TokenClaims(
            subject=payload["sub"],
            roles=tuple(roles),
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )


token_service = TokenService(settings.JWT_SECRET)
