import base64
import json
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from studentadmin.exceptions import InvalidSignatureError, TokenExpiredError
from studentadmin.tokens import TOKEN_TTL, TokenService

SECRET = "unit-test-secret-0123456789abcdefghijkl"
ISSUED = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _unb64(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def test_issue_then_validate_returns_subject_and_roles():
    svc = TokenService(SECRET)
    token = svc.issue_token("alice", ["USER", "ADMIN"], now=ISSUED)
    claims = svc.validate_token(token, now=ISSUED + timedelta(hours=1))
    assert claims.subject == "alice"
    assert set(claims.roles) == {"ADMIN", "USER"}
    assert claims.issued_at == ISSUED
    assert claims.expires_at == ISSUED + TOKEN_TTL


def test_ttl_is_one_day():
    assert TOKEN_TTL == timedelta(days=1)


def test_token_valid_until_just_before_expiry():
    svc = TokenService(SECRET)
    token = svc.issue_token("alice", ["USER"], now=ISSUED)
    svc.validate_token(token, now=ISSUED + TOKEN_TTL - timedelta(seconds=1))


def test_token_expires_exactly_at_expiry():
    svc = TokenService(SECRET)
    token = svc.issue_token("alice", ["USER"], now=ISSUED)
    with pytest.raises(TokenExpiredError):
        svc.validate_token(token, now=ISSUED + TOKEN_TTL)
    with pytest.raises(TokenExpiredError):
        svc.validate_token(token, now=ISSUED + timedelta(days=30))


def test_tampered_payload_is_rejected():
    svc = TokenService(SECRET)
    token = svc.issue_token("bob", ["USER"], now=ISSUED)
    header, payload, signature = token.split(".")
    claims = json.loads(_unb64(payload))
    claims["roles"] = ["ADMIN"]
    forged = ".".join([header, _b64(json.dumps(claims).encode()), signature])
    with pytest.raises(InvalidSignatureError):
        svc.validate_token(forged, now=ISSUED)


def test_token_signed_with_foreign_key_is_rejected():
    foreign = TokenService("some-other-secret-0123456789abcdefghij")
    token = foreign.issue_token("mallory", ["ADMIN"], now=ISSUED)
    with pytest.raises(InvalidSignatureError):
        TokenService(SECRET).validate_token(token, now=ISSUED)


def test_signature_checked_before_expiry():
    # an expired token with a bad signature reports the signature problem
    foreign = TokenService("some-other-secret-0123456789abcdefghij")
    token = foreign.issue_token("mallory", ["ADMIN"], now=ISSUED - timedelta(days=10))
    with pytest.raises(InvalidSignatureError):
        TokenService(SECRET).validate_token(token, now=ISSUED)


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "....."])
def test_garbage_is_rejected(garbage):
    with pytest.raises(InvalidSignatureError):
        TokenService(SECRET).validate_token(garbage, now=ISSUED)


def test_missing_roles_claim_is_rejected():
    token = jwt.encode(
        {"sub": "alice", "iat": int(ISSUED.timestamp()), "exp": int((ISSUED + TOKEN_TTL).timestamp())},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidSignatureError):
        TokenService(SECRET).validate_token(token, now=ISSUED)


def test_non_list_roles_claim_is_rejected():
    token = jwt.encode(
        {"sub": "alice", "roles": "ADMIN", "iat": int(ISSUED.timestamp()), "exp": int((ISSUED + TOKEN_TTL).timestamp())},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(InvalidSignatureError):
        TokenService(SECRET).validate_token(token, now=ISSUED)


def test_none_algorithm_is_rejected():
    token = jwt.encode(
        {"sub": "alice", "roles": ["ADMIN"], "iat": int(ISSUED.timestamp()), "exp": int((ISSUED + TOKEN_TTL).timestamp())},
        None,
        algorithm="none",
    )
    with pytest.raises(InvalidSignatureError):
        TokenService(SECRET).validate_token(token, now=ISSUED)
