"""Partner/public API keys. Only a keyed hash of the raw key is stored."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from romc_api.db.session import Base

API_KEY_PLANS = ("FREE", "PARTNER", "PREMIUM")
API_KEY_RATE_LIMIT_KINDS = ("anon", "auth", "premium")


class ApiKey(Base):
    __tablename__ = "api_key"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    label: Mapped[str] = mapped_column(String(80), nullable=False)
    plan: Mapped[str] = mapped_column(String(16), nullable=False, default="FREE")
    rate_limit_kind: Mapped[str] = mapped_column(String(16), nullable=False, default="premium")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    key_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    last4: Mapped[str] = mapped_column(String(4), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
