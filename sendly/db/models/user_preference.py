from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from sendly.db.base import Base, StringList, utcnow

FREQUENCY_VALUES = ("daily", "weekly", "biweekly")


class UserPreference(Base):
    __tablename__ = "user_preferences"
    __table_args__ = (
        CheckConstraint(
            "frequency IN ('daily', 'weekly', 'biweekly')", name="ck_user_preferences_frequency"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Owned by the hosted auth provider; one preference row per account.
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    categories: Mapped[list[str]] = mapped_column(StringList, default=list)
    frequency: Mapped[str] = mapped_column(String(16), default="weekly")
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    subscription_plan: Mapped[str] = mapped_column(String(20), default="free")
    subscription_status: Mapped[str] = mapped_column(String(20), default="active")
    stripe_customer_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
