from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from redis.exceptions import RedisError

from app.api.deps import get_optional_identity, http_error, raise_for_failure
from app.core.config import get_settings
from app.redemption.errors import RedemptionErrorKind
from app.redemption.service import redeem_code
from app.redemption.types import Redeemer, RedemptionMetadata
from app.redemption.url_parser import validate_campaign_url
from app.services.identity import VerifiedIdentity
from app.services.rate_limit import get_rate_limit_store

from .schemas import RedeemRequest, RedeemResponse

router = APIRouter(tags=["redemption"])
logger = structlog.get_logger(__name__)


def _build_metadata(payload: RedeemRequest) -> RedemptionMetadata:
    source = payload.metadata.source if payload.metadata is not None else None
    if payload.redemption_url:
        validation = validate_campaign_url(payload.redemption_url)
        if not validation.is_valid:
            logger.warning(
                "redemption_url_invalid",
                campaign_id=payload.campaign_id,
                errors=validation.errors,
            )
        elif source is None and validation.data is not None and validation.data.extra_params:
            source = validation.data.extra_params.get("utm_source")

    return RedemptionMetadata(
        source=source,
        device=payload.metadata.device if payload.metadata is not None else None,
        location=payload.metadata.location if payload.metadata is not None else None,
    )


@router.post("/api/redeem", response_model=RedeemResponse)
async def redeem(
    payload: RedeemRequest,
    request: Request,
    identity: VerifiedIdentity | None = Depends(get_optional_identity),
) -> RedeemResponse:
    if identity is not None:
        redeemer = Redeemer(subject_id=identity.subject_id, email=identity.email)
    elif payload.user_email:
        redeemer = Redeemer(email=payload.user_email)
    else:
        raise http_error(
            RedemptionErrorKind.UNAUTHENTICATED,
            message="Sign in or provide an email address to redeem",
        )

    settings = get_settings()
    try:
        decision = await get_rate_limit_store().hit(
            f"redeem:{redeemer.log_key}",
            limit=settings.redeem_rate_limit_max_attempts,
            window_seconds=settings.redeem_rate_limit_window_seconds,
        )
    except (RedisError, OSError) as exc:
        logger.exception("redemption_rate_limit_unavailable", redeemer=redeemer.log_key)
        raise http_error(RedemptionErrorKind.INTERNAL_FAILURE) from exc
    if not decision.allowed:
        logger.warning(
            "redemption_rate_limited",
            redeemer=redeemer.log_key,
            client=request.client.host if request.client is not None else None,
        )
        raise http_error(
            RedemptionErrorKind.RATE_LIMITED,
            context={"reset_at": decision.reset_at.isoformat()},
        )

    outcome = await redeem_code(
        campaign_id=payload.campaign_id.strip(),
        code=payload.code.strip(),
        redeemer=redeemer,
        redemption_url=payload.redemption_url,
        metadata=_build_metadata(payload),
    )
    if outcome.failure is not None:
        raise_for_failure(outcome.failure)
    assert outcome.success is not None

    success = outcome.success
    return RedeemResponse(
        code_id=success.code_id,
        unique_code=success.unique_code,
        campaign_id=success.campaign_id,
        campaign_name=success.campaign_name,
        redemption_value=success.redemption_value,
        redeemed_at=success.redeemed_at,
        new_balance=success.new_balance,
    )
