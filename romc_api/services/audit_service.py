"""Tamper-evident admin audit log.

Every admin mutation appends one ``AdminAuditLog`` row. Rows form a hash
chain: the ``prev_hash`` of entry N is the SHA-256 of entry N-1's own
``prev_hash`` together with its action, entity, timestamp and metadata. The
first entry has no ``prev_hash``. Editing any field of a stored entry, or
its link, breaks the chain at the following entry.

The hash the next entry must carry lives on the single ``AuditChainHead``
row. Appends lock that row for the duration of the transaction, so reading
the tip and writing the next entry is atomic even with concurrent admins.

Appending is best-effort: an audit outage must never block the admin action
being recorded, so database errors are logged and swallowed. Routes schedule
``append`` as a background task after the action has succeeded.
"""

from __future__ import annotations

import csv
import hashlib
import io
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from romc_api.db.session import SessionLocal
from romc_api.models.audit_log import CHAIN_HEAD_ID, AdminAuditLog, AuditChainHead

logger = logging.getLogger(__name__)
EXPORT_DEFAULT_LIMIT = 10_000
EXPORT_MAX_LIMIT = 50_000

CSV_COLUMNS = [
    "id",
    "sequence",
    "createdAt",
    "actorUserId",
    "action",
    "entityType",
    "entityId",
    "prevHash",
    "metadata",
]


class AuditEntryLike(Protocol):
    prev_hash: str | None
    action: str
    entity_type: str
    entity_id: str
    created_at: datetime
    metadata_json: Mapping[str, Any] | None


def format_audit_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix.

    Naive datetimes (as returned by SQLite) are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize_metadata(metadata: Mapping[str, Any] | None) -> str:
    """Canonical JSON for hashing: compact, keys sorted.

    Sorted keys keep hashes stable when the database reorders JSON objects.
    """
    return json.dumps(
        dict(metadata or {}),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def hash_audit_entry(
    *,
    prev_hash: str | None,
    action: str,
    entity_type: str,
    entity_id: str,
    timestamp: str,
    metadata: Mapping[str, Any] | None = None,
) -> str:
    """SHA-256 hex digest of ``prev_hash|action|entity_type|entity_id|timestamp|metadata``."""
    payload = "|".join(
        [
            prev_hash or "",
            action,
            entity_type,
            entity_id,
            timestamp,
            serialize_metadata(metadata),
        ]
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def hash_of_entry(entry: AuditEntryLike) -> str:
    """The hash the entry after ``entry`` must carry as its ``prev_hash``."""
    return hash_audit_entry(
        prev_hash=entry.prev_hash,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        timestamp=format_audit_timestamp(entry.created_at),
        metadata=entry.metadata_json,
    )


def find_chain_break(entries: Iterable[AuditEntryLike]) -> int | None:
    """Index of the first entry whose link does not match, or None.

    Entries must be ordered oldest to newest.
    """
    expected: str | None = None
    for index, entry in enumerate(entries):
        if entry.prev_hash != expected:
            return index
        expected = hash_of_entry(entry)
    return None


def verify_audit_chain(entries: Iterable[AuditEntryLike]) -> bool:
    """True if every entry links to the one before it (empty chains are valid)."""
    return find_chain_break(entries) is None


def _normalize_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Round-trip metadata through JSON so what is stored is what was hashed."""
    if metadata is None:
        return None
    return json.loads(serialize_metadata(metadata))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLogService:
    """Append to and read the admin audit chain.

    Uses its own sessions, so an append is never part of the transaction of
    the action it records.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def _lock_head(self, db: Session) -> AuditChainHead:
        stmt = select(AuditChainHead).where(AuditChainHead.id == CHAIN_HEAD_ID).with_for_update()
        head = db.execute(stmt).scalar_one_or_none()
        if head is None:
            # Only for databases created without create_tables
            head = AuditChainHead(id=CHAIN_HEAD_ID, last_hash=None, sequence=0)
            db.add(head)
            db.flush()
        return head

    def _append_locked(
        self,
        db: Session,
        *,
        actor_user_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: Mapping[str, Any] | None,
    ) -> AdminAuditLog:
        head = self._lock_head(db)
        created_at = self._clock()
        stored_metadata = _normalize_metadata(metadata)

        entry = AdminAuditLog(
            sequence=head.sequence + 1,
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata_json=stored_metadata,
            created_at=created_at,
            prev_hash=head.last_hash,
        )
        db.add(entry)

        head.last_hash = hash_of_entry(entry)
        head.sequence = entry.sequence
        return entry

    def append(
        self,
        actor_user_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> AdminAuditLog | None:
        """Record an admin action.

        Returns:
            The stored entry, or None when the write failed (already logged).
        """
        try:
            with self._session_factory() as db:
                # The returned entry is read after the session closes.
                db.expire_on_commit = False
                with db.begin():
                    entry = self._append_locked(
                        db,
                        actor_user_id=actor_user_id,
                        action=action,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        metadata=metadata,
                    )
        except SQLAlchemyError:
            logger.exception(
                "audit.append_failed",
                extra={"action": action, "entity_type": entity_type, "entity_id": entity_id},
            )
            return None

        logger.info(
            "audit.appended",
            extra={
                "audit_id": entry.id,
                "sequence": entry.sequence,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "actor_user_id": actor_user_id,
            },
        )
        return entry

    def load_chain(self, db: Session) -> list[AdminAuditLog]:
        """Every entry, oldest first."""
        stmt = select(AdminAuditLog).order_by(AdminAuditLog.sequence.asc())
        return list(db.execute(stmt).scalars())

    def recent(self, db: Session, limit: int = EXPORT_DEFAULT_LIMIT) -> list[AdminAuditLog]:
        """Newest entries first, at most ``limit`` (capped at EXPORT_MAX_LIMIT)."""
        capped = max(1, min(limit, EXPORT_MAX_LIMIT))
        stmt = select(AdminAuditLog).order_by(AdminAuditLog.sequence.desc()).limit(capped)
        return list(db.execute(stmt).scalars())

    def verify(self, db: Session) -> dict[str, Any]:
        """Verify the stored chain and report where it breaks, if anywhere."""
        entries = self.load_chain(db)
        broken_at = find_chain_break(entries)
        result: dict[str, Any] = {"valid": broken_at is None, "entries": len(entries)}
        if broken_at is not None:
            result["broken_at_sequence"] = entries[broken_at].sequence
            logger.error(
                "audit.chain_broken",
                extra={"sequence": entries[broken_at].sequence, "entries": len(entries)},
            )
        return result


def export_csv(entries: Sequence[AdminAuditLog]) -> str:
    """Render entries as CSV with every cell quoted."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for entry in entries:
        writer.writerow(
            [
                entry.id,
                entry.sequence,
                format_audit_timestamp(entry.created_at),
                entry.actor_user_id,
                entry.action,
                entry.entity_type,
                entry.entity_id,
                entry.prev_hash or "",
                serialize_metadata(entry.metadata_json),
            ]
        )
    return buffer.getvalue()


def get_audit_log_service() -> AuditLogService:
    return AuditLogService(SessionLocal)
