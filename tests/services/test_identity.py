from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from jose import jwt

from app.services.identity import extract_bearer_token, verify_token

SETTINGS = SimpleNamespace(
    jwt_secret="test-secret",
    jwt_algorithm="HS256",
    jwt_issuer="campaign-redemption",
    jwt_audience="campaign-redemption-users",
)


def _token(secret: str = "test-secret", **claims) -> str:
    payload = {
        "sub": "user-1",
        "iss": "campaign-redemption",
        "aud": "campaign-redemption-users",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        **claims,
    }
    return jwt.encode({key: value for key, value in payload.items() if value is not None}, secret, algorithm="HS256")


def test_extract_bearer_token_reads_header() -> None:
    assert extract_bearer_token("Bearer abc.def") == "abc.def"
    assert extract_bearer_token("bearer   abc ") == "abc"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token("Bearer ") is None
    assert extract_bearer_token(None) is None


def test_verify_token_returns_identity_for_valid_token() -> None:
    identity = verify_token(_token(email="user@example.com"), settings=SETTINGS)

    assert identity is not None
    assert identity.subject_id == "user-1"
    assert identity.email == "user@example.com"
    assert identity.is_admin is False


def test_verify_token_detects_admin_claims() -> None:
    by_flag = verify_token(_token(is_admin=True), settings=SETTINGS)
    by_role = verify_token(_token(role="admin"), settings=SETTINGS)
    by_string = verify_token(_token(is_admin="true"), settings=SETTINGS)

    assert by_flag is not None and by_flag.is_admin is True
    assert by_role is not None and by_role.is_admin is True
    assert by_string is not None and by_string.is_admin is False


def test_verify_token_rejects_bad_signature_audience_and_expiry() -> None:
    expired = _token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))

    assert verify_token(_token(secret="other-secret"), settings=SETTINGS) is None
    assert verify_token(_token(aud="someone-else"), settings=SETTINGS) is None
    assert verify_token(_token(iss="someone-else"), settings=SETTINGS) is None
    assert verify_token(expired, settings=SETTINGS) is None
    assert verify_token("not-a-jwt", settings=SETTINGS) is None
    assert verify_token(None, settings=SETTINGS) is None


def test_verify_token_requires_subject() -> None:
    assert verify_token(_token(sub=None), settings=SETTINGS) is None
