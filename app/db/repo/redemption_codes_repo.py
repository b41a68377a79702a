from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.campaigns import Campaign
from app.db.models.redemption_codes import RedemptionCode

EXISTING_CODES_LOOKUP_CHUNK = 500


class RedemptionCodesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, code_id: str) -> RedemptionCode | None:
        return await session.get(RedemptionCode, code_id)

    @staticmethod
    async def get_by_unique_code(
        session: AsyncSession,
        unique_code: str,
        *,
        refresh: bool = False,
    ) -> RedemptionCode | None:
        stmt = select(RedemptionCode).where(RedemptionCode.unique_code == unique_code)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_campaign(
        session: AsyncSession,
        *,
        campaign_id: str,
        is_used: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[RedemptionCode]:
        stmt = (
            select(RedemptionCode)
            .where(RedemptionCode.campaign_id == campaign_id)
            .order_by(RedemptionCode.created_at.asc(), RedemptionCode.id.asc())
            .limit(limit)
            .offset(offset)
        )
        if is_used is not None:
            stmt = stmt.where(RedemptionCode.is_used.is_(is_used))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_codes(
        session: AsyncSession,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[RedemptionCode]:
        stmt = (
            select(RedemptionCode)
            .order_by(RedemptionCode.created_at.desc(), RedemptionCode.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_unused_with_campaign(
        session: AsyncSession,
        *,
        limit: int = 500,
    ) -> list[tuple[RedemptionCode, str | None]]:
        stmt = (
            select(RedemptionCode, Campaign.name)
            .outerjoin(Campaign, Campaign.id == RedemptionCode.campaign_id)
            .where(RedemptionCode.is_used.is_(False))
            .order_by(RedemptionCode.created_at.asc(), RedemptionCode.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [(code, campaign_name) for code, campaign_name in result.all()]

    @staticmethod
    async def get_first_unused(session: AsyncSession, campaign_id: str) -> RedemptionCode | None:
        stmt = (
            select(RedemptionCode)
            .where(
                RedemptionCode.campaign_id == campaign_id,
                RedemptionCode.is_used.is_(False),
            )
            .order_by(RedemptionCode.created_at.asc(), RedemptionCode.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_unused(session: AsyncSession, campaign_id: str) -> int:
        stmt = select(func.count(RedemptionCode.id)).where(
            RedemptionCode.campaign_id == campaign_id,
            RedemptionCode.is_used.is_(False),
        )
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)

    @staticmethod
    async def find_existing_codes(
        session: AsyncSession,
        candidates: Iterable[str],
    ) -> set[str]:
        values = list(dict.fromkeys(candidates))
        existing: set[str] = set()
        for start in range(0, len(values), EXISTING_CODES_LOOKUP_CHUNK):
            chunk = values[start : start + EXISTING_CODES_LOOKUP_CHUNK]
            stmt = select(RedemptionCode.unique_code).where(RedemptionCode.unique_code.in_(chunk))
            result = await session.execute(stmt)
            existing.update(result.scalars().all())
        return existing

    @staticmethod
    async def create_batch(
        session: AsyncSession,
        *,
        codes: Sequence[RedemptionCode],
    ) -> list[RedemptionCode]:
        session.add_all(codes)
        await session.flush()
        return list(codes)

    @staticmethod
    async def mark_redeemed(
        session: AsyncSession,
        *,
        code_id: str,
        user_id: str,
        user_email: str,
        redeemed_at: datetime,
        redemption_url: str | None = None,
        redemption_source: str | None = None,
        redemption_device: str | None = None,
        redemption_location: str | None = None,
    ) -> int:
        stmt = (
            update(RedemptionCode)
            .where(
                RedemptionCode.id == code_id,
                RedemptionCode.is_used.is_(False),
            )
            .values(
                is_used=True,
                user_id=user_id,
                user_email=user_email,
                redeemed_at=redeemed_at,
                redemption_url=redemption_url,
                redemption_source=redemption_source,
                redemption_device=redemption_device,
                redemption_location=redemption_location,
                updated_at=redeemed_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)
