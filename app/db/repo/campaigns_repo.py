from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from app.core.clock import utc_now
from app.db.models.campaigns import Campaign

CAMPAIGN_MUTABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "redemption_value",
        "is_active",
        "max_redemptions",
        "status",
        "expires_at",
    }
)


def _derived_status(values: dict[str, object], now_utc: datetime) -> str | ColumnElement[str]:
    # unpatched fields are read from the row inside the same UPDATE
    if values.get("is_active") is False:
        return "inactive"
    if "expires_at" in values:
        by_expiry = "expired" if now_utc > values["expires_at"] else "active"
        if "is_active" in values:
            return by_expiry
        return case((Campaign.is_active.is_(False), "inactive"), else_=by_expiry)
    return case((Campaign.expires_at < now_utc, "expired"), else_="active")


class CampaignsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, campaign_id: str) -> Campaign | None:
        return await session.get(Campaign, campaign_id)

    @staticmethod
    async def list_campaigns(
        session: AsyncSession,
        *,
        active_only: bool = False,
        now_utc: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Campaign]:
        stmt = (
            select(Campaign)
            .order_by(Campaign.created_at.desc(), Campaign.id.desc())
            .limit(limit)
            .offset(offset)
        )
        if active_only:
            stmt = stmt.where(
                Campaign.is_active.is_(True),
                Campaign.status == "active",
                Campaign.expires_at >= (now_utc or utc_now()),
            )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create(session: AsyncSession, *, campaign: Campaign) -> Campaign:
        session.add(campaign)
        await session.flush()
        return campaign

    @staticmethod
    async def update_metadata(
        session: AsyncSession,
        *,
        campaign_id: str,
        values: dict[str, object],
        now_utc: datetime,
    ) -> int:
        unknown = set(values) - CAMPAIGN_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"campaign fields are not editable: {sorted(unknown)}")
        if not values:
            return 0

        values = dict(values)
        if "status" in values and "is_active" not in values:
            values["is_active"] = values["status"] != "inactive"
        elif "status" not in values and ("is_active" in values or "expires_at" in values):
            values["status"] = _derived_status(values, now_utc)

        stmt = (
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(**values, updated_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)

    @staticmethod
    async def apply_redemption(
        session: AsyncSession,
        *,
        campaign_id: str,
        redemption_value: Decimal,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(Campaign)
            .where(
                Campaign.id == campaign_id,
                or_(
                    Campaign.max_redemptions.is_(None),
                    Campaign.current_redemptions < Campaign.max_redemptions,
                ),
            )
            .values(
                current_redemptions=Campaign.current_redemptions + 1,
                total_redemptions=Campaign.total_redemptions + 1,
                total_redemption_value=Campaign.total_redemption_value + redemption_value,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)
