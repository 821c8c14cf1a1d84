"""Admin audit log (append-only, hash-linked)."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Mapped, Session, mapped_column

from romc_api.db.session import Base

CHAIN_HEAD_ID = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AdminAuditLog(Base):
    """One admin mutation. Written once, never updated or deleted."""

    __tablename__ = "admin_audit_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # Position in the chain; assigned under the chain-head lock.
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    actor_user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(200), nullable=False)
    # "metadata" is reserved on declarative classes, hence the attribute name.
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)


class AuditChainHead(Base):
    """Single row holding the hash the next audit entry must carry.

    Appends lock this row, so reading the chain tip and inserting the next
    entry happen as one step even with concurrent admins.
    """

    __tablename__ = "admin_audit_chain_head"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


def seed_chain_head(bind: Engine) -> None:
    """Insert the empty chain head if it is missing.

    Runs at table creation so that appends always find a row to lock, even
    when the first two appends on a fresh database race each other.
    """
    with Session(bind) as db:
        if db.get(AuditChainHead, CHAIN_HEAD_ID) is None:
            db.add(AuditChainHead(id=CHAIN_HEAD_ID, last_hash=None, sequence=0))
            db.commit()
