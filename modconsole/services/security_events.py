"""Security signals: direct events, window-based burst detectors and auto-freeze.

Every detector first looks for an equivalent event inside its window, so a
single burst produces a single event no matter how often it is checked.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from modconsole.core.clock import Clock, utcnow
from modconsole.core.config import settings
from modconsole.core.permissions import OWNER_PRIORITY
from modconsole.models.approval import ApprovalRequest, CommandExecution
from modconsole.models.enums import AuditEvent, RiskLevel, Severity
from modconsole.models.security import LoginAttempt, SecurityEvent, SensitiveModeGrant
from modconsole.models.user import User
from modconsole.services.audit_service import AuditService, audit_service, record
from modconsole.services.cache_service import CacheService, cache_service
from modconsole.services.membership_service import membership_service
from modconsole.services.security_settings import get_security_settings

logger = logging.getLogger("modconsole.security")

CROSS_TENANT_ACCESS_ATTEMPT = "cross_tenant_access_attempt"
LOGIN_FAILED_BURST = "login_failed_burst"
HIGH_RISK_COMMAND_BURST = "high_risk_command_burst"
APPROVAL_SPAM = "approval_spam"

AUTO_FREEZE_EVENT_TYPES = frozenset({CROSS_TENANT_ACCESS_ATTEMPT, LOGIN_FAILED_BURST})


class SecurityEventService:
    """Records security events. Callers own the transaction and commit."""

    def __init__(
        self,
        clock: Clock = utcnow,
        audit: Optional[AuditService] = None,
        publisher: Optional[CacheService] = None,
    ):
        self.clock = clock
        self.audit = audit or audit_service
        self.publisher = publisher or cache_service

    def create_event(
        self,
        db: Session,
        severity: Severity,
        event_type: str,
        community_id: Optional[str] = None,
        user_id: Optional[str] = None,
        metadata: Optional[Any] = None,
    ) -> SecurityEvent:
        event = SecurityEvent(
            community_id=community_id,
            user_id=user_id,
            severity=Severity(severity),
            event_type=event_type,
            metadata_json=json.dumps(metadata, default=str) if metadata is not None else None,
            created_at=self.clock(),
        )
        db.add(event)
        db.flush()
        logger.warning(
            "Security event %s (%s) community=%s user=%s",
            event_type, event.severity.value, community_id, user_id,
        )

        if settings.EVENT_FANOUT_ENABLED and community_id:
            self.publisher.publish_json(f"security_events:{community_id}", {
                "id": event.id,
                "severity": event.severity.value,
                "eventType": event_type,
                "userId": user_id,
                "createdAt": event.created_at.isoformat(),
            })

        if community_id and user_id:
            self._maybe_auto_freeze(db, event, metadata)
        return event

    def _maybe_auto_freeze(self, db: Session, event: SecurityEvent, metadata: Any) -> None:
        if event.event_type not in AUTO_FREEZE_EVENT_TYPES:
            return
        policy = get_security_settings(db, event.community_id)
        if not policy.auto_freeze_enabled:
            return
        if event.severity.rank < policy.auto_freeze_threshold.rank:
            return

        target = db.get(User, event.user_id)
        if target is None or target.disabled_at is not None:
            return
        # Owners are never frozen automatically.
        if membership_service.role_priority(db, event.community_id, target.id) >= OWNER_PRIORITY:
            return

        target.disabled_at = self.clock()
        db.query(SensitiveModeGrant).filter(
            SensitiveModeGrant.user_id == target.id
        ).delete(synchronize_session=False)
        db.flush()
        logger.warning("Auto-froze user %s after %s", target.id, event.event_type)

        self.audit.append_best_effort(db, record(
            AuditEvent.USER_DISABLED,
            community_id=event.community_id,
            targetUserId=target.id,
            disabled=True,
            source="auto_freeze",
            trigger={
                "eventType": event.event_type,
                "severity": event.severity.value,
                "metadata": metadata,
            },
        ))

    def _already_recorded(self, db: Session, event_type: str, user_id: str, since, community_id=None) -> bool:
        query = db.query(SecurityEvent.id).filter(
            SecurityEvent.event_type == event_type,
            SecurityEvent.user_id == user_id,
            SecurityEvent.created_at >= since,
        )
        if community_id is not None:
            query = query.filter(SecurityEvent.community_id == community_id)
        return query.first() is not None

    def maybe_record_high_risk_command_burst(
        self, db: Session, community_id: str, user_id: str
    ) -> Optional[SecurityEvent]:
        window = settings.SIGNAL_WINDOW_MINUTES
        since = self.clock() - timedelta(minutes=window)
        count = db.query(CommandExecution).filter(
            CommandExecution.community_id == community_id,
            CommandExecution.user_id == user_id,
            CommandExecution.risk_level == RiskLevel.HIGH,
            CommandExecution.created_at >= since,
        ).count()
        if count < settings.HIGH_RISK_BURST_THRESHOLD:
            return None
        if self._already_recorded(db, HIGH_RISK_COMMAND_BURST, user_id, since, community_id):
            return None
        severity = (
            Severity.CRITICAL if count >= settings.HIGH_RISK_BURST_CRITICAL_THRESHOLD else Severity.HIGH
        )
        return self.create_event(
            db, severity, HIGH_RISK_COMMAND_BURST,
            community_id=community_id, user_id=user_id,
            metadata={"count": count, "windowMinutes": window},
        )

    def maybe_record_approval_spam(
        self, db: Session, community_id: str, user_id: str
    ) -> Optional[SecurityEvent]:
        window = settings.SIGNAL_WINDOW_MINUTES
        since = self.clock() - timedelta(minutes=window)
        count = db.query(ApprovalRequest).filter(
            ApprovalRequest.community_id == community_id,
            ApprovalRequest.requested_by_user_id == user_id,
            ApprovalRequest.created_at >= since,
        ).count()
        if count < settings.APPROVAL_SPAM_THRESHOLD:
            return None
        if self._already_recorded(db, APPROVAL_SPAM, user_id, since, community_id):
            return None
        return self.create_event(
            db, Severity.MEDIUM, APPROVAL_SPAM,
            community_id=community_id, user_id=user_id,
            metadata={"count": count, "windowMinutes": window},
        )

    def maybe_record_login_failed_burst(
        self,
        db: Session,
        email: str,
        user_id: str,
        window_minutes: int,
        locked: bool,
        community_id: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[SecurityEvent]:
        since = self.clock() - timedelta(minutes=window_minutes)
        failures = db.query(LoginAttempt).filter(
            LoginAttempt.email == email,
            LoginAttempt.success.is_(False),
            LoginAttempt.created_at >= since,
        ).count()
        if failures < settings.LOGIN_FAILED_BURST_THRESHOLD:
            return None
        if self._already_recorded(db, LOGIN_FAILED_BURST, user_id, since):
            return None
        return self.create_event(
            db, Severity.CRITICAL if locked else Severity.HIGH, LOGIN_FAILED_BURST,
            community_id=community_id, user_id=user_id,
            metadata={
                "email": email,
                "ip": ip,
                "userAgent": user_agent,
                "failures": failures,
                "windowMinutes": window_minutes,
            },
        )

    @staticmethod
    def list_events(
        db: Session,
        community_id: str,
        severity: Optional[Severity] = None,
        event_type: Optional[str] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 80,
    ):
        """List one community's security events, newest first."""
        query = db.query(SecurityEvent).filter(SecurityEvent.community_id == community_id)
        if severity:
            query = query.filter(SecurityEvent.severity == Severity(severity))
        if event_type:
            query = query.filter(SecurityEvent.event_type.ilike(f"%{event_type.strip()[:64]}%"))
        if user_id:
            query = query.filter(SecurityEvent.user_id == user_id)

        total = query.count()
        events = (
            query.order_by(SecurityEvent.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"events": events, "total": total, "page": page}


security_event_service = SecurityEventService()
