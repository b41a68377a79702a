from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError

from app.api.deps import get_optional_identity, http_error, raise_for_failure, require_admin
from app.core.config import get_settings
from app.db.repo.redemption_codes_repo import RedemptionCodesRepo
from app.db.session import SessionLocal
from app.redemption.codes import resolve_code_config
from app.redemption.errors import GenerationExhaustedError, RedemptionErrorKind
from app.redemption.service import RedemptionService
from app.redemption.types import RedemptionFailure
from app.services.identity import VerifiedIdentity

from .schemas import (
    CreateCodesRequest,
    CreateCodesResponse,
    CreatedCodeResponse,
    RedemptionCodeListResponse,
    code_as_response,
)

router = APIRouter(tags=["redemption-codes"])
logger = structlog.get_logger(__name__)


@router.post("/api/redemption-codes", response_model=CreateCodesResponse, status_code=201)
async def create_redemption_codes(
    payload: CreateCodesRequest,
    identity: VerifiedIdentity = Depends(require_admin),
) -> CreateCodesResponse:
    max_codes = get_settings().max_codes_per_request
    if payload.quantity > max_codes:
        raise http_error(
            RedemptionErrorKind.INVALID_ARGUMENT,
            message=f"quantity must not exceed {max_codes}",
        )

    try:
        async with SessionLocal.begin() as session:
            result = await RedemptionService.create_codes(
                session,
                campaign_id=payload.campaign_id,
                quantity=payload.quantity,
                config=resolve_code_config(payload.preset),
            )
    except GenerationExhaustedError as exc:
        logger.warning(
            "redemption_codes_generation_exhausted",
            campaign_id=payload.campaign_id,
            quantity=payload.quantity,
            preset=payload.preset,
        )
        raise http_error(RedemptionErrorKind.GENERATION_EXHAUSTED) from exc
    except IntegrityError as exc:
        # a concurrent batch stored one of the drawn codes after the collision check
        logger.warning(
            "redemption_codes_insert_conflict",
            campaign_id=payload.campaign_id,
            quantity=payload.quantity,
        )
        raise http_error(
            RedemptionErrorKind.INTERNAL_FAILURE,
            message="Code creation collided with a concurrent batch, please retry",
        ) from exc

    if isinstance(result, RedemptionFailure):
        raise_for_failure(result)

    logger.info(
        "redemption_codes_requested",
        campaign_id=result.campaign_id,
        codes_created=result.codes_created,
        created_by=identity.subject_id,
    )
    return CreateCodesResponse(
        campaign_id=result.campaign_id,
        codes_created=result.codes_created,
        codes=[CreatedCodeResponse(id=code.id, unique_code=code.unique_code) for code in result.codes],
    )


@router.get("/api/redemption-codes", response_model=RedemptionCodeListResponse)
async def list_redemption_codes(
    id: str | None = Query(default=None, min_length=1, max_length=64),
    code: str | None = Query(default=None, min_length=1, max_length=64),
    campaign_id: str | None = Query(default=None, min_length=1, max_length=64),
    is_used: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    identity: VerifiedIdentity | None = Depends(get_optional_identity),
) -> RedemptionCodeListResponse:
    if identity is None:
        raise http_error(RedemptionErrorKind.UNAUTHENTICATED)

    async with SessionLocal.begin() as session:
        if id is not None or code is not None:
            found = (
                await RedemptionCodesRepo.get_by_id(session, id)
                if id is not None
                else await RedemptionCodesRepo.get_by_unique_code(session, code or "")
            )
            if found is None:
                raise http_error(RedemptionErrorKind.CODE_NOT_FOUND)
            if not identity.is_admin and found.user_id != identity.subject_id:
                raise http_error(RedemptionErrorKind.FORBIDDEN)
            items = [code_as_response(found)]
        else:
            if not identity.is_admin:
                logger.warning("admin_access_denied", subject_id=identity.subject_id, path="/api/redemption-codes")
                raise http_error(RedemptionErrorKind.FORBIDDEN)
            if campaign_id is not None:
                rows = await RedemptionCodesRepo.list_by_campaign(
                    session,
                    campaign_id=campaign_id,
                    is_used=is_used,
                    limit=limit,
                    offset=offset,
                )
            else:
                rows = await RedemptionCodesRepo.list_codes(session, limit=limit, offset=offset)
            items = [code_as_response(row) for row in rows]

    return RedemptionCodeListResponse(codes=items, count=len(items))
