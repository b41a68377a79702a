from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from app.core.clock import as_utc, utc_now
from app.db.models.campaigns import Campaign
from app.db.models.redemption_codes import RedemptionCode
from app.db.models.users import User

CampaignStatus = Literal["active", "inactive", "expired"]
UrlSafePreset = Literal["STANDARD", "SHORT", "SECURE", "LETTERS_ONLY"]

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class RedeemMetadataPayload(BaseModel):
    source: str | None = Field(default=None, max_length=128)
    device: str | None = Field(default=None, max_length=128)
    location: str | None = Field(default=None, max_length=128)


class RedeemRequest(BaseModel):
    campaign_id: str = Field(min_length=1, max_length=64)
    code: str = Field(min_length=1, max_length=64)
    user_email: str | None = Field(default=None, max_length=320, pattern=EMAIL_PATTERN)
    redemption_url: str | None = Field(default=None, max_length=2048)
    metadata: RedeemMetadataPayload | None = None


class RedeemResponse(BaseModel):
    code_id: str
    unique_code: str
    campaign_id: str
    campaign_name: str
    redemption_value: Decimal
    redeemed_at: datetime
    new_balance: Decimal


class CampaignCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    redemption_value: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    max_redemptions: int | None = Field(default=None, ge=1)
    expires_at: datetime
    is_active: bool = True


class CampaignUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    redemption_value: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    max_redemptions: int | None = Field(default=None, ge=1)
    is_active: bool | None = None
    status: CampaignStatus | None = None
    expires_at: datetime | None = None


class CampaignResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    redemption_value: Decimal
    is_active: bool
    status: CampaignStatus
    max_redemptions: int | None = None
    current_redemptions: int = Field(ge=0)
    total_redemptions: int = Field(ge=0)
    total_redemption_value: Decimal
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    available_codes: int | None = None


class CampaignListResponse(BaseModel):
    campaigns: list[CampaignResponse]
    count: int = Field(ge=0)


class CampaignValidationResponse(BaseModel):
    valid: bool
    campaign_id: str
    unique_code: str
    campaign_name: str | None = None
    redemption_value: Decimal | None = None
    expires_at: datetime | None = None


class CreateCodesRequest(BaseModel):
    campaign_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(ge=1, le=1000)
    preset: UrlSafePreset = "STANDARD"


class CreatedCodeResponse(BaseModel):
    id: str
    unique_code: str


class CreateCodesResponse(BaseModel):
    campaign_id: str
    codes_created: int = Field(ge=0)
    codes: list[CreatedCodeResponse]


class RedemptionCodeResponse(BaseModel):
    id: str
    campaign_id: str
    unique_code: str
    is_used: bool
    user_email: str | None = None
    redemption_value: Decimal | None = None
    redeemed_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime


class RedemptionCodeListResponse(BaseModel):
    codes: list[RedemptionCodeResponse]
    count: int = Field(ge=0)


class UnusedCodeResponse(BaseModel):
    id: str
    unique_code: str
    campaign_id: str
    campaign_name: str | None = None
    redemption_value: Decimal | None = None
    created_at: datetime


class UnusedCodesResponse(BaseModel):
    codes: list[UnusedCodeResponse]
    count: int = Field(ge=0)


class UtmParams(BaseModel):
    source: str | None = Field(default=None, max_length=128)
    medium: str | None = Field(default=None, max_length=128)
    campaign: str | None = Field(default=None, max_length=128)
    content: str | None = Field(default=None, max_length=128)
    term: str | None = Field(default=None, max_length=128)


class GenerateRedeemUrlRequest(BaseModel):
    campaign_id: str = Field(min_length=1, max_length=64)
    base_url: str | None = Field(default=None, max_length=512)
    utm_params: UtmParams | None = None


class GenerateRedeemUrlResponse(BaseModel):
    campaign_id: str
    campaign_name: str
    code_id: str
    unique_code: str
    redemption_value: Decimal
    redeem_url: str
    remaining_codes: int = Field(ge=0)


class UrlInputRequest(BaseModel):
    url: str = Field(max_length=4096)
    allow_extra_params: bool = True


class CampaignUrlDataResponse(BaseModel):
    campaign_id: str
    unique_code: str
    original_url: str
    is_valid: bool
    extra_params: dict[str, str] | None = None
    errors: list[str] = Field(default_factory=list)


class UrlValidationResponse(BaseModel):
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    error_kinds: list[str]
    data: CampaignUrlDataResponse | None = None


class UserProfileResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    balance: Decimal
    total_redemptions: int = Field(ge=0)
    total_redemption_value: Decimal
    is_admin: bool


def campaign_as_response(
    campaign: Campaign,
    *,
    available_codes: int | None = None,
    now_utc: datetime | None = None,
) -> CampaignResponse:
    return CampaignResponse(
        id=campaign.id,
        name=campaign.name,
        description=campaign.description,
        redemption_value=campaign.redemption_value,
        is_active=campaign.is_active,
        status=campaign.effective_status(now_utc or utc_now()),
        max_redemptions=campaign.max_redemptions,
        current_redemptions=campaign.current_redemptions,
        total_redemptions=campaign.total_redemptions,
        total_redemption_value=campaign.total_redemption_value,
        expires_at=as_utc(campaign.expires_at),
        created_at=as_utc(campaign.created_at),
        updated_at=as_utc(campaign.updated_at),
        available_codes=available_codes,
    )


def code_as_response(code: RedemptionCode) -> RedemptionCodeResponse:
    return RedemptionCodeResponse(
        id=code.id,
        campaign_id=code.campaign_id,
        unique_code=code.unique_code,
        is_used=code.is_used,
        user_email=code.user_email,
        redemption_value=code.redemption_value,
        redeemed_at=as_utc(code.redeemed_at),
        expires_at=as_utc(code.expires_at),
        created_at=as_utc(code.created_at),
    )


def user_as_response(user: User) -> UserProfileResponse:
    return UserProfileResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        balance=user.balance,
        total_redemptions=user.total_redemptions,
        total_redemption_value=user.total_redemption_value,
        is_admin=user.is_admin,
    )
