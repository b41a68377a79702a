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
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import as_utc
from app.db.models.base import Base

CAMPAIGN_STATUSES = ("active", "inactive", "expired")


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active','inactive','expired')",
            name="ck_campaigns_status",
        ),
        CheckConstraint("redemption_value > 0", name="ck_campaigns_redemption_value_positive"),
        CheckConstraint(
            "max_redemptions IS NULL OR max_redemptions > 0",
            name="ck_campaigns_max_redemptions_positive",
        ),
        CheckConstraint(
            "current_redemptions >= 0",
            name="ck_campaigns_current_redemptions_non_negative",
        ),
        CheckConstraint(
            "max_redemptions IS NULL OR current_redemptions <= max_redemptions",
            name="ck_campaigns_current_le_max",
        ),
        Index("idx_campaigns_expires_at", "expires_at"),
        Index("idx_campaigns_active_created", "is_active", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: uuid4().hex)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    redemption_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=True, server_default=text("true"))
    max_redemptions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_redemptions: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    total_redemptions: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_redemption_value: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default=text("0"),
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="active",
        server_default=text("'active'"),
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def effective_status(self, now_utc: datetime) -> str:
        if self.status == "expired":
            return "expired"
        if self.status == "inactive" or not self.is_active:
            return "inactive"
        expires_at = as_utc(self.expires_at)
        if expires_at is not None and now_utc > expires_at:
            return "expired"
        return "active"
