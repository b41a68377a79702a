from __future__ import annotations

from typing import NoReturn

import structlog
from fastapi import Depends, HTTPException, Request

from app.core.config import get_settings
from app.redemption.errors import HTTP_STATUS_BY_KIND, RedemptionErrorKind, error_detail
from app.redemption.types import RedemptionFailure
from app.services.identity import VerifiedIdentity, extract_bearer_token, verify_token

logger = structlog.get_logger(__name__)


def http_error(
    kind: RedemptionErrorKind,
    *,
    message: str | None = None,
    context: dict[str, object] | None = None,
) -> HTTPException:
    return HTTPException(
        status_code=HTTP_STATUS_BY_KIND[kind],
        detail=error_detail(kind, message=message, context=context),
    )


def raise_for_failure(failure: RedemptionFailure) -> NoReturn:
    raise http_error(failure.error_kind, message=failure.message, context=failure.context)


async def get_optional_identity(request: Request) -> VerifiedIdentity | None:
    header = request.headers.get("Authorization")
    if header is None:
        return None

    identity = verify_token(extract_bearer_token(header), settings=get_settings())
    if identity is None:
        raise http_error(RedemptionErrorKind.UNAUTHENTICATED, message="Invalid or expired token")
    return identity


async def require_identity(
    identity: VerifiedIdentity | None = Depends(get_optional_identity),
) -> VerifiedIdentity:
    if identity is None:
        raise http_error(RedemptionErrorKind.UNAUTHENTICATED)
    return identity


async def require_admin(
    request: Request,
    identity: VerifiedIdentity = Depends(require_identity),
) -> VerifiedIdentity:
    if not identity.is_admin:
        logger.warning(
            "admin_access_denied",
            subject_id=identity.subject_id,
            path=request.url.path,
        )
        raise http_error(RedemptionErrorKind.FORBIDDEN)
    return identity
