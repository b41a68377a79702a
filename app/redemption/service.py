from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utc_now
from app.db.models.campaigns import Campaign
from app.db.models.redemption_codes import RedemptionCode
from app.db.models.users import User
from app.db.repo.campaigns_repo import CampaignsRepo
from app.db.repo.redemption_codes_repo import RedemptionCodesRepo
from app.db.repo.users_repo import UsersRepo
from app.db.session import SessionLocal
from app.redemption.codes import CodeGenerationConfig, generate_bulk_codes
from app.redemption.errors import GenerationExhaustedError, RedemptionAborted, RedemptionErrorKind
from app.redemption.types import (
    CreatedCode,
    CreatedCodes,
    NextRedemptionUrl,
    RedeemableCheck,
    Redeemer,
    RedemptionFailure,
    RedemptionMetadata,
    RedemptionOutcome,
    RedemptionSuccess,
)
from app.redemption.url_parser import build_campaign_url

logger = structlog.get_logger(__name__)

MAX_COLLISION_REDRAW_ROUNDS = 5
UTM_PARAM_KEYS = ("source", "medium", "campaign", "content", "term")


def _failure(kind: RedemptionErrorKind, **context: object) -> RedemptionOutcome:
    return RedemptionOutcome.failed(
        kind,
        context={key: value for key, value in context.items() if value is not None},
    )


def _already_used(code: RedemptionCode) -> RedemptionOutcome:
    redeemed_at = as_utc(code.redeemed_at)
    return _failure(
        RedemptionErrorKind.CODE_ALREADY_USED,
        redeemed_at=redeemed_at.isoformat() if redeemed_at is not None else None,
        redeemed_by=code.user_email,
    )


class RedemptionService:
    @staticmethod
    async def _check_preconditions(
        session: AsyncSession,
        *,
        campaign_id: str,
        code: str,
        now_utc: datetime,
    ) -> tuple[Campaign | None, RedemptionCode | None, RedemptionOutcome | None]:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            return None, None, _failure(RedemptionErrorKind.CAMPAIGN_NOT_FOUND, campaign_id=campaign_id)
        if not campaign.is_active or campaign.status == "inactive":
            return campaign, None, _failure(RedemptionErrorKind.CAMPAIGN_INACTIVE, campaign_id=campaign_id)

        campaign_expires_at = as_utc(campaign.expires_at)
        if campaign.status == "expired" or (
            campaign_expires_at is not None and now_utc > campaign_expires_at
        ):
            return campaign, None, _failure(
                RedemptionErrorKind.CAMPAIGN_EXPIRED,
                campaign_id=campaign_id,
                expired_at=campaign_expires_at.isoformat() if campaign_expires_at else None,
            )

        redemption_code = await RedemptionCodesRepo.get_by_unique_code(session, code)
        if redemption_code is None:
            return campaign, None, _failure(RedemptionErrorKind.CODE_NOT_FOUND)
        if redemption_code.campaign_id != campaign.id:
            return campaign, redemption_code, _failure(
                RedemptionErrorKind.CODE_CAMPAIGN_MISMATCH,
                campaign_id=campaign_id,
            )
        if redemption_code.is_used:
            return campaign, redemption_code, _already_used(redemption_code)

        code_expires_at = as_utc(redemption_code.expires_at)
        if code_expires_at is not None and now_utc > code_expires_at:
            return campaign, redemption_code, _failure(
                RedemptionErrorKind.CODE_EXPIRED,
                expired_at=code_expires_at.isoformat(),
            )

        if (
            campaign.max_redemptions is not None
            and campaign.current_redemptions >= campaign.max_redemptions
        ):
            return campaign, redemption_code, _failure(
                RedemptionErrorKind.CAMPAIGN_LIMIT_REACHED,
                max_redemptions=campaign.max_redemptions,
            )
        return campaign, redemption_code, None

    @staticmethod
    async def _resolve_user(
        session: AsyncSession,
        *,
        redeemer: Redeemer,
        now_utc: datetime,
    ) -> tuple[User | None, bool, RedemptionOutcome | None]:
        if redeemer.subject_id:
            user = await UsersRepo.get_by_id(session, redeemer.subject_id)
            if user is None:
                return None, False, _failure(RedemptionErrorKind.USER_NOT_FOUND)
        else:
            assert redeemer.email is not None
            user = await UsersRepo.get_by_email(session, redeemer.email)
            if user is None:
                user = await UsersRepo.create(session, email=redeemer.email, now_utc=now_utc)
                return user, True, None

        if not user.is_active:
            return user, False, _failure(RedemptionErrorKind.USER_INACTIVE)
        return user, False, None

    @staticmethod
    async def check_redeemable(
        session: AsyncSession,
        *,
        campaign_id: str,
        code: str,
        now_utc: datetime | None = None,
    ) -> RedeemableCheck:
        now_utc = now_utc or utc_now()
        campaign, _, outcome = await RedemptionService._check_preconditions(
            session,
            campaign_id=campaign_id,
            code=code,
            now_utc=now_utc,
        )
        return RedeemableCheck(
            is_redeemable=outcome is None,
            campaign_id=campaign_id,
            unique_code=code,
            campaign_name=campaign.name if campaign is not None else None,
            redemption_value=campaign.redemption_value if campaign is not None else None,
            expires_at=as_utc(campaign.expires_at) if campaign is not None else None,
            failure=outcome.failure if outcome is not None else None,
        )

    @staticmethod
    async def redeem(
        session: AsyncSession,
        *,
        campaign_id: str,
        code: str,
        redeemer: Redeemer,
        redemption_url: str | None = None,
        metadata: RedemptionMetadata | None = None,
        now_utc: datetime | None = None,
    ) -> RedemptionOutcome:
        now_utc = now_utc or utc_now()
        metadata = metadata or RedemptionMetadata()

        campaign, redemption_code, outcome = await RedemptionService._check_preconditions(
            session,
            campaign_id=campaign_id,
            code=code,
            now_utc=now_utc,
        )
        if outcome is not None:
            logger.info(
                "redemption_rejected",
                campaign_id=campaign_id,
                code=code,
                redeemer=redeemer.log_key,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
            )
            return outcome
        assert campaign is not None and redemption_code is not None

        user, user_created, outcome = await RedemptionService._resolve_user(
            session,
            redeemer=redeemer,
            now_utc=now_utc,
        )
        if outcome is not None:
            logger.info(
                "redemption_rejected",
                campaign_id=campaign_id,
                code=code,
                redeemer=redeemer.log_key,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
            )
            return outcome
        assert user is not None

        marked = await RedemptionCodesRepo.mark_redeemed(
            session,
            code_id=redemption_code.id,
            user_id=user.id,
            user_email=user.email,
            redeemed_at=now_utc,
            redemption_url=redemption_url,
            redemption_source=metadata.source,
            redemption_device=metadata.device,
            redemption_location=metadata.location,
        )
        if marked != 1:
            winner = await RedemptionCodesRepo.get_by_unique_code(session, code, refresh=True)
            lost = (
                _already_used(winner)
                if winner is not None
                else _failure(RedemptionErrorKind.CODE_ALREADY_USED)
            )
            logger.warning(
                "redemption_race_lost",
                campaign_id=campaign_id,
                code=code,
                redeemer=redeemer.log_key,
            )
            if user_created:
                raise RedemptionAborted(lost)
            return lost

        redemption_value = Decimal(campaign.redemption_value)
        credited = await UsersRepo.credit_redemption(
            session,
            user_id=user.id,
            amount=redemption_value,
            now_utc=now_utc,
        )
        if credited != 1:
            raise RedemptionAborted(_failure(RedemptionErrorKind.USER_NOT_FOUND))

        counted = await CampaignsRepo.apply_redemption(
            session,
            campaign_id=campaign.id,
            redemption_value=redemption_value,
            now_utc=now_utc,
        )
        if counted != 1:
            raise RedemptionAborted(
                _failure(
                    RedemptionErrorKind.CAMPAIGN_LIMIT_REACHED,
                    max_redemptions=campaign.max_redemptions,
                )
            )

        new_balance = await UsersRepo.get_balance(session, user.id)
        logger.info(
            "redemption_succeeded",
            campaign_id=campaign.id,
            code=code,
            code_id=redemption_code.id,
            user_id=user.id,
            redemption_value=str(redemption_value),
            user_created=user_created,
        )
        return RedemptionOutcome.succeeded(
            RedemptionSuccess(
                code_id=redemption_code.id,
                unique_code=redemption_code.unique_code,
                redemption_value=redemption_value,
                redeemed_at=now_utc,
                new_balance=new_balance if new_balance is not None else redemption_value,
                campaign_id=campaign.id,
                campaign_name=campaign.name,
                user_id=user.id,
            )
        )

    @staticmethod
    async def create_codes(
        session: AsyncSession,
        *,
        campaign_id: str,
        quantity: int,
        config: CodeGenerationConfig | None = None,
        now_utc: datetime | None = None,
    ) -> CreatedCodes | RedemptionFailure:
        now_utc = now_utc or utc_now()
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            outcome = _failure(RedemptionErrorKind.CAMPAIGN_NOT_FOUND, campaign_id=campaign_id)
            assert outcome.failure is not None
            return outcome.failure

        accepted = generate_bulk_codes(quantity, config).codes
        stored = await RedemptionCodesRepo.find_existing_codes(session, accepted)
        redrawn = 0
        rounds = 0
        while stored:
            rounds += 1
            if rounds > MAX_COLLISION_REDRAW_ROUNDS:
                raise GenerationExhaustedError(
                    f"could not avoid {len(stored)} stored codes after {rounds - 1} rounds"
                )
            redrawn += len(stored)
            kept = [code for code in accepted if code not in stored]
            replacements = generate_bulk_codes(
                len(stored),
                config,
                existing_codes=set(kept) | stored,
            ).codes
            stored = await RedemptionCodesRepo.find_existing_codes(session, replacements)
            accepted = kept + replacements

        rows = await RedemptionCodesRepo.create_batch(
            session,
            codes=[
                RedemptionCode(
                    campaign_id=campaign.id,
                    unique_code=unique_code,
                    is_used=False,
                    redemption_value=campaign.redemption_value,
                    expires_at=campaign.expires_at,
                    created_at=now_utc,
                    updated_at=now_utc,
                )
                for unique_code in accepted
            ],
        )
        logger.info(
            "redemption_codes_created",
            campaign_id=campaign.id,
            codes_created=len(rows),
            redrawn=redrawn,
        )
        return CreatedCodes(
            campaign_id=campaign.id,
            codes=[CreatedCode(id=row.id, unique_code=row.unique_code) for row in rows],
            redrawn=redrawn,
        )

    @staticmethod
    async def next_redemption_url(
        session: AsyncSession,
        *,
        campaign_id: str,
        base_url: str,
        utm_params: Mapping[str, str | None] | None = None,
    ) -> NextRedemptionUrl | RedemptionFailure:
        campaign = await CampaignsRepo.get_by_id(session, campaign_id)
        if campaign is None:
            outcome = _failure(RedemptionErrorKind.CAMPAIGN_NOT_FOUND, campaign_id=campaign_id)
        elif not campaign.is_active or campaign.status == "inactive":
            outcome = _failure(RedemptionErrorKind.CAMPAIGN_INACTIVE, campaign_id=campaign_id)
        else:
            outcome = None
        if outcome is not None:
            assert outcome.failure is not None
            return outcome.failure
        assert campaign is not None

        code = await RedemptionCodesRepo.get_first_unused(session, campaign.id)
        if code is None:
            return RedemptionFailure(
                error_kind=RedemptionErrorKind.CODE_NOT_FOUND,
                message="No unused redemption codes available for this campaign",
                context={
                    "campaign_id": campaign.id,
                    "campaign_name": campaign.name,
                    "available_codes": 0,
                },
            )

        extra_params = {
            f"utm_{key}": value
            for key in UTM_PARAM_KEYS
            if (value := (utm_params or {}).get(key))
        }
        available = await RedemptionCodesRepo.count_unused(session, campaign.id)
        return NextRedemptionUrl(
            campaign_id=campaign.id,
            campaign_name=campaign.name,
            code_id=code.id,
            unique_code=code.unique_code,
            redemption_value=Decimal(code.redemption_value or campaign.redemption_value),
            redeem_url=build_campaign_url(
                campaign_id=campaign.id,
                unique_code=code.unique_code,
                extra_params=extra_params,
                base_path=f"{base_url.rstrip('/')}/redeem",
            ),
            remaining_codes=max(available - 1, 0),
        )


async def redeem_code(
    *,
    campaign_id: str,
    code: str,
    redeemer: Redeemer,
    redemption_url: str | None = None,
    metadata: RedemptionMetadata | None = None,
    now_utc: datetime | None = None,
) -> RedemptionOutcome:
    """Run one redemption in its own transaction.

    Expected failures come back as outcomes. A ``RedemptionAborted`` raised after
    a write rolls the transaction back and its outcome is returned instead, and
    storage errors become ``INTERNAL_FAILURE``.
    """
    try:
        async with SessionLocal.begin() as session:
            return await RedemptionService.redeem(
                session,
                campaign_id=campaign_id,
                code=code,
                redeemer=redeemer,
                redemption_url=redemption_url,
                metadata=metadata,
                now_utc=now_utc,
            )
    except RedemptionAborted as aborted:
        logger.warning(
            "redemption_rolled_back",
            campaign_id=campaign_id,
            code=code,
            redeemer=redeemer.log_key,
            error_kind=aborted.outcome.error_kind.value if aborted.outcome.error_kind else None,
        )
        return aborted.outcome
    except (SQLAlchemyError, OSError):
        logger.exception(
            "redemption_internal_failure",
            campaign_id=campaign_id,
            code=code,
            redeemer=redeemer.log_key,
        )
        return _failure(RedemptionErrorKind.INTERNAL_FAILURE)
