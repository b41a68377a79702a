from __future__ import annotations

from fastapi import APIRouter

from app.redemption.url_parser import (
    DEFAULT_URL_PARSER_CONFIG,
    CampaignUrlData,
    parse_campaign_url,
    validate_campaign_url,
)

from .schemas import CampaignUrlDataResponse, UrlInputRequest, UrlValidationResponse

router = APIRouter(tags=["redemption-urls"])


def _data_as_response(data: CampaignUrlData) -> CampaignUrlDataResponse:
    return CampaignUrlDataResponse(
        campaign_id=data.campaign_id,
        unique_code=data.unique_code,
        original_url=data.original_url,
        is_valid=data.is_valid,
        extra_params=data.extra_params,
        errors=data.errors,
    )


@router.post("/api/redemption-urls/parse", response_model=CampaignUrlDataResponse)
async def parse_redemption_url(payload: UrlInputRequest) -> CampaignUrlDataResponse:
    config = DEFAULT_URL_PARSER_CONFIG.with_overrides(allow_extra_params=payload.allow_extra_params)
    return _data_as_response(parse_campaign_url(payload.url, config))


@router.post("/api/redemption-urls/validate", response_model=UrlValidationResponse)
async def validate_redemption_url(payload: UrlInputRequest) -> UrlValidationResponse:
    config = DEFAULT_URL_PARSER_CONFIG.with_overrides(allow_extra_params=payload.allow_extra_params)
    result = validate_campaign_url(payload.url, config)
    return UrlValidationResponse(
        is_valid=result.is_valid,
        errors=result.errors,
        warnings=result.warnings,
        error_kinds=[kind.value for kind in result.error_kinds],
        data=_data_as_response(result.data) if result.data is not None else None,
    )
