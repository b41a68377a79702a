from __future__ import annotations

from dataclasses import dataclass

import structlog
from jose import JWTError, jwt

from app.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    subject_id: str
    email: str | None
    is_admin: bool


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header:
        return None
    value = authorization_header.strip()
    if not value.lower().startswith(BEARER_PREFIX):
        return None
    token = value[len(BEARER_PREFIX) :].strip()
    return token or None


def _claims_admin(claims: dict[str, object]) -> bool:
    if claims.get("is_admin") is True:
        return True
    return claims.get("role") == "admin"


def verify_token(token: str | None, *, settings: Settings | None = None) -> VerifiedIdentity | None:
    if not token:
        return None

    resolved = settings or get_settings()
    try:
        claims = jwt.decode(
            token,
            resolved.jwt_secret,
            algorithms=[resolved.jwt_algorithm],
            audience=resolved.jwt_audience,
            issuer=resolved.jwt_issuer,
        )
    except JWTError as exc:
        logger.info("identity_token_rejected", reason=type(exc).__name__)
        return None

    subject_id = claims.get("sub")
    if not isinstance(subject_id, str) or not subject_id:
        logger.info("identity_token_rejected", reason="missing_subject")
        return None

    email = claims.get("email")
    return VerifiedIdentity(
        subject_id=subject_id,
        email=email if isinstance(email, str) and email else None,
        is_admin=_claims_admin(claims),
    )
