from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    BOOLEAN,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
        CheckConstraint("total_redemptions >= 0", name="ck_users_total_redemptions_non_negative"),
        CheckConstraint(
            "total_redemption_value >= 0",
            name="ck_users_total_redemption_value_non_negative",
        ),
        UniqueConstraint("email", name="uq_users_email"),
        Index("idx_users_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: uuid4().hex)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    first_name: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    last_name: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=text("''"))
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default=text("0"),
    )
    total_redemptions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_redemption_value: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default=text("0"),
    )
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=True, server_default=text("true"))
    is_admin: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
