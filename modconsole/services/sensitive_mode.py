"""Sensitive mode: short-lived elevated trust bound to a login session."""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from modconsole.core.clock import Clock, utcnow
from modconsole.core.exceptions import AuthenticationError, SensitiveModeRequiredError
from modconsole.core.security import verify_password
from modconsole.models.enums import AuditEvent
from modconsole.models.security import SensitiveModeGrant
from modconsole.models.user import User
from modconsole.services.audit_service import AuditService, audit_service, record


class SensitiveModeStatus(BaseModel):
    enabled: bool
    expires_at: Optional[datetime] = None


class SensitiveModeService:
    """Grant lookups and the explicit step-up / step-down flow."""

    def __init__(self, clock: Clock = utcnow, audit: Optional[AuditService] = None):
        self.clock = clock
        self.audit = audit or audit_service

    def get_status(self, db: Session, user_id: str, session_token: Optional[str]) -> SensitiveModeStatus:
        """Current grant for this session. Stale or foreign grants are purged."""
        if not session_token:
            return SensitiveModeStatus(enabled=False)
        grant = db.get(SensitiveModeGrant, session_token)
        if grant is None:
            return SensitiveModeStatus(enabled=False)
        if grant.user_id != user_id or grant.expires_at <= self.clock():
            db.delete(grant)
            db.flush()
            return SensitiveModeStatus(enabled=False)
        return SensitiveModeStatus(enabled=True, expires_at=grant.expires_at)

    def require(self, db: Session, user_id: str, session_token: Optional[str]) -> None:
        if not self.get_status(db, user_id, session_token).enabled:
            raise SensitiveModeRequiredError()

    def enable(
        self,
        db: Session,
        user_id: str,
        session_token: str,
        password: str,
        ttl_minutes: int,
        community_id: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SensitiveModeStatus:
        """Re-verify the password and open (or extend) a grant. Caller commits."""
        user = db.get(User, user_id)
        if user is None or not user.hashed_password or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Password confirmation failed.")

        now = self.clock()
        expires_at = now + timedelta(minutes=ttl_minutes)
        grant = db.get(SensitiveModeGrant, session_token)
        if grant is None:
            grant = SensitiveModeGrant(session_token=session_token, user_id=user_id)
            db.add(grant)
        grant.user_id = user_id
        grant.enabled_at = now
        grant.expires_at = expires_at
        db.flush()

        self.audit.append_best_effort(db, record(
            AuditEvent.SENSITIVE_MODE_ENABLED,
            community_id=community_id,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
            expiresAt=expires_at.isoformat(),
        ))
        return SensitiveModeStatus(enabled=True, expires_at=expires_at)

    def disable(
        self,
        db: Session,
        user_id: str,
        session_token: str,
        community_id: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        db.query(SensitiveModeGrant).filter(
            SensitiveModeGrant.session_token == session_token,
            SensitiveModeGrant.user_id == user_id,
        ).delete(synchronize_session=False)
        self.audit.append_best_effort(db, record(
            AuditEvent.SENSITIVE_MODE_DISABLED,
            community_id=community_id,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
        ))


sensitive_mode_service = SensitiveModeService()
