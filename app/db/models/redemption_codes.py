from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    BOOLEAN,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class RedemptionCode(Base):
    __tablename__ = "redemption_codes"
    __table_args__ = (
        CheckConstraint(
            "is_used = false OR (user_id IS NOT NULL AND user_email IS NOT NULL "
            "AND redeemed_at IS NOT NULL)",
            name="ck_redemption_codes_used_has_redeemer",
        ),
        UniqueConstraint("unique_code", name="uq_redemption_codes_unique_code"),
        Index("idx_redemption_codes_campaign_used", "campaign_id", "is_used"),
        Index("idx_redemption_codes_user", "user_id"),
        Index("idx_redemption_codes_redeemed_at", "redeemed_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: uuid4().hex)
    campaign_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("campaigns.id"),
        nullable=False,
    )
    unique_code: Mapped[str] = mapped_column(String(64), nullable=False)
    is_used: Mapped[bool] = mapped_column(BOOLEAN, nullable=False, default=False, server_default=text("false"))
    user_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("users.id"), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    redemption_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    redemption_source: Mapped[str | None] = mapped_column(String(128), nullable=True)
    redemption_device: Mapped[str | None] = mapped_column(String(128), nullable=True)
    redemption_location: Mapped[str | None] = mapped_column(String(128), nullable=True)
    redemption_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
