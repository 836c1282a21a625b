"""Append-only, hash-chained audit trail for all mutations."""

import json
import logging
from dataclasses import dataclass, replace
from typing import Optional, Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from modconsole.core.clock import Clock, utcnow
from modconsole.core.config import settings
from modconsole.core.exceptions import AuditWriteError
from modconsole.core.throttle import LogThrottle
from modconsole.models.audit_log import AuditLog, AuditChainLock
from modconsole.models.enums import AuditEvent
from modconsole.models.user import User
from modconsole.services.audit_chain import (
    ChainVerification, compute_audit_hash, truncate_ms, verify_chain,
)

logger = logging.getLogger("modconsole.audit")

AUDIT_CHAIN_LOCK_KEY = 3182001
AUDIT_CHAIN_LOCK_ROW = 1

# Shared by every AuditService so failures are throttled across requests.
audit_error_throttle = LogThrottle(settings.LOG_THROTTLE_SECONDS)


@dataclass(frozen=True)
class AuditRecord:
    """What a caller wants written; chain fields are filled in by the writer."""
    event_type: str
    community_id: Optional[str] = None
    user_id: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Any] = None

    def anonymized(self) -> "AuditRecord":
        """Same record without the user FK; the actor id moves into metadata."""
        if isinstance(self.metadata, dict):
            metadata = {**self.metadata, "actorUserId": self.user_id}
        else:
            metadata = {"actorUserId": self.user_id, "metadata": self.metadata}
        return replace(self, user_id=None, metadata=metadata)


@dataclass
class AuditResult:
    """Outcome of an append. Exactly one of ``entry`` / ``error`` is set."""
    entry: Optional[AuditLog] = None
    error: Optional[BaseException] = None
    anonymized: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> AuditLog:
        if self.error is not None:
            raise AuditWriteError("Failed to write audit log entry.") from self.error
        return self.entry


def _normalize_metadata(metadata: Any) -> Any:
    """Drop empty top-level keys and round-trip through JSON.

    The hash is computed over exactly what a reader will get back from
    ``metadata_json``.
    """
    if metadata is None:
        return None
    if isinstance(metadata, dict):
        metadata = {k: v for k, v in metadata.items() if v is not None}
    return json.loads(json.dumps(metadata, default=str, ensure_ascii=False))


class AuditService:
    """Records immutable, hash-linked audit log entries.

    ``append`` never raises for a failed write; it returns an AuditResult and
    each call site picks a policy: ``append_strict`` inside the atomic unit
    whose side effect is being recorded (failure rolls the unit back), or
    ``append_best_effort`` for telemetry that must not break the caller.
    """

    def __init__(self, clock: Clock = utcnow, error_throttle: Optional[LogThrottle] = None):
        self.clock = clock
        self.error_throttle = error_throttle or audit_error_throttle

    @staticmethod
    def _lock_chain(db: Session) -> None:
        """Take the chain-wide exclusive lock for the rest of the transaction."""
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": AUDIT_CHAIN_LOCK_KEY})
            return
        if dialect == "sqlite":
            # Transactions already begin IMMEDIATE, holding the database write lock.
            return
        lock = (
            db.query(AuditChainLock)
            .filter(AuditChainLock.id == AUDIT_CHAIN_LOCK_ROW)
            .with_for_update()
            .first()
        )
        if lock is None:
            try:
                with db.begin_nested():
                    db.add(AuditChainLock(id=AUDIT_CHAIN_LOCK_ROW))
            except IntegrityError:
                pass  # another appender created it first
            db.query(AuditChainLock).filter(
                AuditChainLock.id == AUDIT_CHAIN_LOCK_ROW
            ).with_for_update().one()

    def _write(self, db: Session, record: AuditRecord) -> AuditLog:
        savepoint = db.begin_nested()
        try:
            self._lock_chain(db)
            tail = (
                db.query(AuditLog.chain_index, AuditLog.hash)
                .order_by(AuditLog.chain_index.desc())
                .first()
            )
            chain_index = (tail.chain_index if tail else 0) + 1
            prev_hash = tail.hash if tail else None
            created_at = truncate_ms(self.clock())
            metadata = _normalize_metadata(record.metadata)
            event_type = str(getattr(record.event_type, "value", record.event_type))

            entry = AuditLog(
                chain_index=chain_index,
                prev_hash=prev_hash,
                hash=compute_audit_hash(
                    prev_hash=prev_hash,
                    chain_index=chain_index,
                    community_id=record.community_id,
                    user_id=record.user_id,
                    event_type=event_type,
                    ip=record.ip,
                    user_agent=record.user_agent,
                    metadata=metadata,
                    created_at=created_at,
                ),
                community_id=record.community_id,
                user_id=record.user_id,
                event_type=event_type,
                ip=record.ip,
                user_agent=record.user_agent,
                metadata_json=json.dumps(metadata, ensure_ascii=False) if metadata is not None else None,
                created_at=created_at,
            )
            db.add(entry)
            db.flush()
        except BaseException:
            savepoint.rollback()
            raise
        savepoint.commit()
        return entry

    def append(self, db: Session, record: AuditRecord) -> AuditResult:
        """Append one entry inside the caller's transaction.

        A foreign-key failure on ``user_id`` (an actor with no persisted user
        row) is retried once with the actor folded into metadata. Any other
        integrity failure is returned as is.
        """
        try:
            return AuditResult(entry=self._write(db, record))
        except IntegrityError as exc:
            if record.user_id is None or self._user_exists(db, record.user_id):
                return AuditResult(error=exc)
            try:
                return AuditResult(entry=self._write(db, record.anonymized()), anonymized=True)
            except SQLAlchemyError as retry_exc:
                return AuditResult(error=retry_exc)
        except SQLAlchemyError as exc:
            return AuditResult(error=exc)

    @staticmethod
    def _user_exists(db: Session, user_id: str) -> bool:
        return db.query(User.id).filter(User.id == user_id).first() is not None

    def append_strict(self, db: Session, record: AuditRecord) -> AuditLog:
        """Append or raise AuditWriteError."""
        return self.append(db, record).unwrap()

    def append_best_effort(self, db: Session, record: AuditRecord) -> AuditResult:
        """Append; failures are logged (throttled) and returned, never raised."""
        result = self.append(db, record)
        if not result.ok:
            self.error_throttle.error(
                logger, "audit_write", "Failed to write audit log entry %s: %s",
                record.event_type, result.error,
            )
        return result

    @staticmethod
    def query_logs(
        db: Session,
        community_id: str,
        event_type: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ):
        """Query one community's audit logs with filters and pagination."""
        query = db.query(AuditLog).filter(AuditLog.community_id == community_id)

        if event_type:
            query = query.filter(AuditLog.event_type.ilike(f"%{event_type}%"))
        if user_id:
            query = query.filter(AuditLog.user_id == user_id)

        total = query.count()
        logs = (
            query.order_by(AuditLog.chain_index.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
        }

    @staticmethod
    def verify_recent(db: Session, limit: Optional[int] = 1000) -> ChainVerification:
        """Verify the newest ``limit`` entries of the global chain (all if None)."""
        query = db.query(AuditLog).order_by(AuditLog.chain_index.desc())
        if limit:
            query = query.limit(limit)
        return verify_chain(query.all())


def record(
    event_type: AuditEvent,
    community_id: Optional[str] = None,
    user_id: Optional[str] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    **metadata,
) -> AuditRecord:
    """Shorthand for building an AuditRecord with keyword metadata."""
    return AuditRecord(
        event_type=event_type.value,
        community_id=community_id,
        user_id=user_id,
        ip=ip,
        user_agent=user_agent,
        metadata=metadata or None,
    )


audit_service = AuditService()
