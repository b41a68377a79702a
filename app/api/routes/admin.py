from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query

from app.api.deps import raise_for_failure, require_admin
from app.core.clock import as_utc
from app.core.config import get_settings
from app.db.repo.redemption_codes_repo import RedemptionCodesRepo
from app.db.session import SessionLocal
from app.redemption.service import RedemptionService
from app.redemption.types import RedemptionFailure
from app.services.identity import VerifiedIdentity

from .schemas import (
    GenerateRedeemUrlRequest,
    GenerateRedeemUrlResponse,
    UnusedCodeResponse,
    UnusedCodesResponse,
)

router = APIRouter(tags=["admin"])
logger = structlog.get_logger(__name__)


@router.get("/api/admin/unused-codes", response_model=UnusedCodesResponse)
async def list_unused_codes(
    limit: int = Query(default=500, ge=1, le=5000),
    identity: VerifiedIdentity = Depends(require_admin),
) -> UnusedCodesResponse:
    async with SessionLocal.begin() as session:
        rows = await RedemptionCodesRepo.list_unused_with_campaign(session, limit=limit)
        items = [
            UnusedCodeResponse(
                id=code.id,
                unique_code=code.unique_code,
                campaign_id=code.campaign_id,
                campaign_name=campaign_name,
                redemption_value=code.redemption_value,
                created_at=as_utc(code.created_at),
            )
            for code, campaign_name in rows
        ]
    return UnusedCodesResponse(codes=items, count=len(items))


@router.post("/api/admin/generate-redeem-url", response_model=GenerateRedeemUrlResponse)
async def generate_redeem_url(
    payload: GenerateRedeemUrlRequest,
    identity: VerifiedIdentity = Depends(require_admin),
) -> GenerateRedeemUrlResponse:
    base_url = payload.base_url or get_settings().redeem_base_url
    async with SessionLocal.begin() as session:
        result = await RedemptionService.next_redemption_url(
            session,
            campaign_id=payload.campaign_id,
            base_url=base_url,
            utm_params=payload.utm_params.model_dump() if payload.utm_params is not None else None,
        )
    if isinstance(result, RedemptionFailure):
        raise_for_failure(result)

    logger.info(
        "redeem_url_generated",
        campaign_id=result.campaign_id,
        code_id=result.code_id,
        requested_by=identity.subject_id,
    )
    return GenerateRedeemUrlResponse(
        campaign_id=result.campaign_id,
        campaign_name=result.campaign_name,
        code_id=result.code_id,
        unique_code=result.unique_code,
        redemption_value=result.redemption_value,
        redeem_url=result.redeem_url,
        remaining_codes=result.remaining_codes,
    )
