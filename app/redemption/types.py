from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from app.redemption.errors import ERROR_MESSAGES, HTTP_STATUS_BY_KIND, RedemptionErrorKind


@dataclass(frozen=True, slots=True)
class Redeemer:
    """Who is redeeming: a verified subject id or, for anonymous links, an email."""

    subject_id: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        if not self.subject_id and not (self.email and self.email.strip()):
            raise ValueError("redeemer needs a subject id or an email")

    @property
    def is_verified(self) -> bool:
        return bool(self.subject_id)

    @property
    def log_key(self) -> str:
        return f"user:{self.subject_id}" if self.subject_id else f"email:{(self.email or '').lower()}"


@dataclass(frozen=True, slots=True)
class RedemptionMetadata:
    source: str | None = None
    device: str | None = None
    location: str | None = None


@dataclass(slots=True)
class RedemptionSuccess:
    code_id: str
    unique_code: str
    redemption_value: Decimal
    redeemed_at: datetime
    new_balance: Decimal
    campaign_id: str
    campaign_name: str
    user_id: str


@dataclass(slots=True)
class RedemptionFailure:
    error_kind: RedemptionErrorKind
    message: str
    context: dict[str, object] = field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND[self.error_kind]


@dataclass(slots=True)
class RedemptionOutcome:
    success: RedemptionSuccess | None = None
    failure: RedemptionFailure | None = None

    @property
    def ok(self) -> bool:
        return self.success is not None

    @property
    def error_kind(self) -> RedemptionErrorKind | None:
        return self.failure.error_kind if self.failure is not None else None

    @classmethod
    def succeeded(cls, success: RedemptionSuccess) -> RedemptionOutcome:
        return cls(success=success)

    @classmethod
    def failed(
        cls,
        kind: RedemptionErrorKind,
        *,
        context: dict[str, object] | None = None,
        message: str | None = None,
    ) -> RedemptionOutcome:
        return cls(
            failure=RedemptionFailure(
                error_kind=kind,
                message=message or ERROR_MESSAGES[kind],
                context=context or {},
            )
        )


@dataclass(slots=True)
class RedeemableCheck:
    is_redeemable: bool
    campaign_id: str
    unique_code: str
    campaign_name: str | None = None
    redemption_value: Decimal | None = None
    expires_at: datetime | None = None
    failure: RedemptionFailure | None = None


@dataclass(slots=True)
class CreatedCode:
    id: str
    unique_code: str


@dataclass(slots=True)
class CreatedCodes:
    campaign_id: str
    codes: list[CreatedCode]
    redrawn: int = 0

    @property
    def codes_created(self) -> int:
        return len(self.codes)


@dataclass(slots=True)
class NextRedemptionUrl:
    campaign_id: str
    campaign_name: str
    code_id: str
    unique_code: str
    redemption_value: Decimal
    redeem_url: str
    remaining_codes: int
