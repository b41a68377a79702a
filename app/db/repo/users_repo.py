from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UsersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: str) -> User | None:
        return await session.get(User, user_id)

    @staticmethod
    async def get_by_email(session: AsyncSession, email: str) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        email: str,
        now_utc: datetime,
        first_name: str = "",
        last_name: str = "",
        country: str | None = None,
        is_admin: bool = False,
    ) -> User:
        user = User(
            email=normalize_email(email),
            first_name=first_name,
            last_name=last_name,
            country=country,
            balance=Decimal("0.00"),
            total_redemptions=0,
            total_redemption_value=Decimal("0.00"),
            is_active=True,
            is_admin=is_admin,
            created_at=now_utc,
            updated_at=now_utc,
        )
        session.add(user)
        await session.flush()
        return user

    @staticmethod
    async def credit_redemption(
        session: AsyncSession,
        *,
        user_id: str,
        amount: Decimal,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                balance=User.balance + amount,
                total_redemptions=User.total_redemptions + 1,
                total_redemption_value=User.total_redemption_value + amount,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)

    @staticmethod
    async def get_balance(session: AsyncSession, user_id: str) -> Decimal | None:
        stmt = select(User.balance).where(User.id == user_id)
        result = await session.execute(stmt)
        balance = result.scalar_one_or_none()
        if balance is None:
            return None
        return Decimal(balance)
