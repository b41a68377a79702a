from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError

from app.api.deps import http_error, raise_for_failure, require_admin
from app.core.clock import as_utc, utc_now
from app.db.models.campaigns import Campaign
from app.db.repo.campaigns_repo import CampaignsRepo
from app.db.repo.redemption_codes_repo import RedemptionCodesRepo
from app.db.session import SessionLocal
from app.redemption.errors import RedemptionErrorKind
from app.redemption.service import RedemptionService
from app.services.identity import VerifiedIdentity

from .schemas import (
    CampaignCreateRequest,
    CampaignListResponse,
    CampaignResponse,
    CampaignUpdateRequest,
    CampaignValidationResponse,
    campaign_as_response,
)

router = APIRouter(tags=["campaigns"])
logger = structlog.get_logger(__name__)


@router.get("/api/campaigns", response_model=CampaignListResponse)
async def list_campaigns(
    active_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> CampaignListResponse:
    now_utc = utc_now()
    async with SessionLocal.begin() as session:
        campaigns = await CampaignsRepo.list_campaigns(
            session,
            active_only=active_only,
            now_utc=now_utc,
            limit=limit,
            offset=offset,
        )
        items = [campaign_as_response(campaign, now_utc=now_utc) for campaign in campaigns]
    return CampaignListResponse(campaigns=items, count=len(items))


@router.get("/api/campaigns/validate", response_model=CampaignValidationResponse)
async def validate_campaign_code(
    campaign_id: str = Query(min_length=1, max_length=64),
    code: str | None = Query(default=None, min_length=1, max_length=64),
    unique_code: str | None = Query(default=None, min_length=1, max_length=64),
) -> CampaignValidationResponse:
    lookup_code = code or unique_code
    if lookup_code is None:
        raise http_error(
            RedemptionErrorKind.INVALID_ARGUMENT,
            message="Missing required parameters: campaign_id and code",
        )

    async with SessionLocal.begin() as session:
        check = await RedemptionService.check_redeemable(
            session,
            campaign_id=campaign_id.strip(),
            code=lookup_code.strip(),
        )
    if check.failure is not None:
        raise_for_failure(check.failure)

    return CampaignValidationResponse(
        valid=check.is_redeemable,
        campaign_id=check.campaign_id,
        unique_code=check.unique_code,
        campaign_name=check.campaign_name,
        redemption_value=check.redemption_value,
        expires_at=check.expires_at,
    )


@router.get("/api/campaigns/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(campaign_id: str) -> CampaignResponse:
    async with SessionLocal.begin() as session:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            raise http_error(
                RedemptionErrorKind.CAMPAIGN_NOT_FOUND,
                context={"campaign_id": campaign_id},
            )
        available = await RedemptionCodesRepo.count_unused(session, campaign.id)
        return campaign_as_response(campaign, available_codes=available)


@router.post("/api/campaigns", response_model=CampaignResponse, status_code=201)
async def create_campaign(
    payload: CampaignCreateRequest,
    identity: VerifiedIdentity = Depends(require_admin),
) -> CampaignResponse:
    now_utc = utc_now()
    async with SessionLocal.begin() as session:
        campaign = await CampaignsRepo.create(
            session,
            campaign=Campaign(
                name=payload.name.strip(),
                description=payload.description,
                redemption_value=payload.redemption_value,
                is_active=payload.is_active,
                max_redemptions=payload.max_redemptions,
                current_redemptions=0,
                total_redemptions=0,
                total_redemption_value=0,
                status="active" if payload.is_active else "inactive",
                expires_at=as_utc(payload.expires_at),
                created_at=now_utc,
                updated_at=now_utc,
            ),
        )
        response = campaign_as_response(campaign, available_codes=0, now_utc=now_utc)

    logger.info("campaign_created", campaign_id=response.id, created_by=identity.subject_id)
    return response


@router.patch("/api/campaigns/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: str,
    payload: CampaignUpdateRequest,
    identity: VerifiedIdentity = Depends(require_admin),
) -> CampaignResponse:
    values = payload.model_dump(exclude_unset=True)
    for required in ("name", "redemption_value", "is_active", "status", "expires_at"):
        if required in values and values[required] is None:
            raise http_error(
                RedemptionErrorKind.INVALID_ARGUMENT,
                message=f"{required} cannot be null",
            )
    if (
        "is_active" in values
        and "status" in values
        and values["is_active"] != (values["status"] != "inactive")
    ):
        raise http_error(
            RedemptionErrorKind.INVALID_ARGUMENT,
            message="is_active and status contradict each other",
        )
    if values.get("expires_at") is not None:
        values["expires_at"] = as_utc(values["expires_at"])

    try:
        async with SessionLocal.begin() as session:
            updated = await CampaignsRepo.update_metadata(
                session,
                campaign_id=campaign_id,
                values=values,
                now_utc=utc_now(),
            )
            campaign = await CampaignsRepo.get_by_id(session, campaign_id)
            if campaign is None or (values and updated == 0):
                raise http_error(
                    RedemptionErrorKind.CAMPAIGN_NOT_FOUND,
                    context={"campaign_id": campaign_id},
                )
            await session.refresh(campaign)
            available = await RedemptionCodesRepo.count_unused(session, campaign.id)
            response = campaign_as_response(campaign, available_codes=available)
    except IntegrityError as exc:
        logger.warning("campaign_update_rejected", campaign_id=campaign_id, reason="constraint")
        raise http_error(
            RedemptionErrorKind.INVALID_ARGUMENT,
            message="Campaign update violates a campaign constraint",
        ) from exc

    logger.info(
        "campaign_updated",
        campaign_id=campaign_id,
        fields=sorted(values),
        updated_by=identity.subject_id,
    )
    return response
