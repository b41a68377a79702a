from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.redemption.types import RedemptionOutcome


class RedemptionErrorKind(str, Enum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    URL_PARSE_FAILURE = "URL_PARSE_FAILURE"
    CAMPAIGN_ID_FORMAT_INVALID = "CAMPAIGN_ID_FORMAT_INVALID"
    CODE_FORMAT_INVALID = "CODE_FORMAT_INVALID"
    CAMPAIGN_NOT_FOUND = "CAMPAIGN_NOT_FOUND"
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    CODE_CAMPAIGN_MISMATCH = "CODE_CAMPAIGN_MISMATCH"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    CAMPAIGN_INACTIVE = "CAMPAIGN_INACTIVE"
    CAMPAIGN_EXPIRED = "CAMPAIGN_EXPIRED"
    CAMPAIGN_LIMIT_REACHED = "CAMPAIGN_LIMIT_REACHED"
    CODE_ALREADY_USED = "CODE_ALREADY_USED"
    CODE_EXPIRED = "CODE_EXPIRED"
    USER_INACTIVE = "USER_INACTIVE"
    RATE_LIMITED = "RATE_LIMITED"
    GENERATION_EXHAUSTED = "GENERATION_EXHAUSTED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    INTERNAL_FAILURE = "INTERNAL_FAILURE"


ERROR_MESSAGES: dict[RedemptionErrorKind, str] = {
    RedemptionErrorKind.INVALID_ARGUMENT: "The request is missing or has invalid fields",
    RedemptionErrorKind.URL_PARSE_FAILURE: "The redemption link could not be read",
    RedemptionErrorKind.CAMPAIGN_ID_FORMAT_INVALID: "The campaign identifier is not valid",
    RedemptionErrorKind.CODE_FORMAT_INVALID: "The redemption code is not valid",
    RedemptionErrorKind.CAMPAIGN_NOT_FOUND: "Campaign not found",
    RedemptionErrorKind.CODE_NOT_FOUND: "Redemption code not found",
    RedemptionErrorKind.CODE_CAMPAIGN_MISMATCH: "This code does not belong to this campaign",
    RedemptionErrorKind.USER_NOT_FOUND: "User account not found",
    RedemptionErrorKind.CAMPAIGN_INACTIVE: "Campaign is not active",
    RedemptionErrorKind.CAMPAIGN_EXPIRED: "Campaign has ended",
    RedemptionErrorKind.CAMPAIGN_LIMIT_REACHED: "Campaign has reached its maximum number of redemptions",
    RedemptionErrorKind.CODE_ALREADY_USED: "This code has already been used",
    RedemptionErrorKind.CODE_EXPIRED: "This code has expired",
    RedemptionErrorKind.USER_INACTIVE: "User account is inactive",
    RedemptionErrorKind.RATE_LIMITED: "Too many redemption attempts, try again later",
    RedemptionErrorKind.GENERATION_EXHAUSTED: "Unable to generate the requested number of unique codes",
    RedemptionErrorKind.UNAUTHENTICATED: "Authentication required",
    RedemptionErrorKind.FORBIDDEN: "Admin access required",
    RedemptionErrorKind.INTERNAL_FAILURE: "Redemption failed due to a system error, please retry",
}

HTTP_STATUS_BY_KIND: dict[RedemptionErrorKind, int] = {
    RedemptionErrorKind.INVALID_ARGUMENT: 400,
    RedemptionErrorKind.URL_PARSE_FAILURE: 400,
    RedemptionErrorKind.CAMPAIGN_ID_FORMAT_INVALID: 400,
    RedemptionErrorKind.CODE_FORMAT_INVALID: 400,
    RedemptionErrorKind.CAMPAIGN_NOT_FOUND: 404,
    RedemptionErrorKind.CODE_NOT_FOUND: 404,
    RedemptionErrorKind.CODE_CAMPAIGN_MISMATCH: 400,
    RedemptionErrorKind.USER_NOT_FOUND: 404,
    RedemptionErrorKind.CAMPAIGN_INACTIVE: 400,
    RedemptionErrorKind.CAMPAIGN_EXPIRED: 400,
    RedemptionErrorKind.CAMPAIGN_LIMIT_REACHED: 400,
    RedemptionErrorKind.CODE_ALREADY_USED: 400,
    RedemptionErrorKind.CODE_EXPIRED: 400,
    RedemptionErrorKind.USER_INACTIVE: 403,
    RedemptionErrorKind.RATE_LIMITED: 429,
    RedemptionErrorKind.GENERATION_EXHAUSTED: 422,
    RedemptionErrorKind.UNAUTHENTICATED: 401,
    RedemptionErrorKind.FORBIDDEN: 403,
    RedemptionErrorKind.INTERNAL_FAILURE: 500,
}


def error_detail(
    kind: RedemptionErrorKind,
    *,
    message: str | None = None,
    context: dict[str, object] | None = None,
) -> dict[str, object]:
    detail: dict[str, object] = {
        "error_kind": kind.value,
        "message": message or ERROR_MESSAGES[kind],
    }
    if context:
        detail["context"] = context
    return detail


class CodeGenerationError(Exception):
    kind = RedemptionErrorKind.INTERNAL_FAILURE


class InvalidArgumentError(CodeGenerationError, ValueError):
    kind = RedemptionErrorKind.INVALID_ARGUMENT


class GenerationExhaustedError(CodeGenerationError):
    kind = RedemptionErrorKind.GENERATION_EXHAUSTED


class RedemptionAborted(Exception):
    """Raised after a write so the surrounding transaction rolls back.

    The outcome to report is carried on the exception.
    """

    def __init__(self, outcome: RedemptionOutcome) -> None:
        super().__init__(outcome.error_kind.value if outcome.error_kind else "aborted")
        self.outcome = outcome
