"""Tenant isolation guard.

A resource that exists in another community is reported as a security
violation but surfaced to the caller as the same not-found error a missing
resource produces, so ids cannot be probed across communities.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from modconsole.core.exceptions import NotFoundError
from modconsole.models.approval import ApprovalRequest
from modconsole.models.enums import AuditEvent, Severity
from modconsole.models.moderation import Case, ModerationAction, Player, Report
from modconsole.services.audit_service import AuditService, audit_service, record
from modconsole.services.security_events import (
    CROSS_TENANT_ACCESS_ATTEMPT, SecurityEventService, security_event_service,
)

logger = logging.getLogger("modconsole.tenant")

# resource name -> (model, user-facing label)
RESOURCES = {
    "player": (Player, "Player"),
    "action": (ModerationAction, "Action"),
    "case": (Case, "Case"),
    "report": (Report, "Report"),
    "approval": (ApprovalRequest, "Approval request"),
}


@dataclass(frozen=True)
class TenantViolation:
    resource: str
    resource_id: str
    actor_community_id: str
    resource_community_id: str
    actor_user_id: Optional[str]
    operation: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class TenantGuard:
    """Checks that referenced resources belong to the acting community.

    With ``deferred`` set, violations are collected instead of reported so
    the owner of the surrounding transaction can record them after rolling
    back (see ``report``). Without it they are written and committed at once.
    """

    def __init__(
        self,
        db: Session,
        deferred: Optional[list] = None,
        audit: Optional[AuditService] = None,
        signals: Optional[SecurityEventService] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ):
        self.db = db
        self.deferred = deferred
        self.audit = audit or audit_service
        self.signals = signals or security_event_service
        self.ip = ip
        self.user_agent = user_agent

    def require_in_community(
        self,
        resource: str,
        resource_id: str,
        community_id: str,
        actor_user_id: Optional[str],
        operation: str = "write",
        lock: bool = False,
    ):
        model, label = RESOURCES[resource]
        query = self.db.query(model).filter(model.id == resource_id)
        if lock:
            query = query.with_for_update()
        obj = query.populate_existing().first()
        not_found = NotFoundError(f"{label} not found.")
        if obj is None:
            raise not_found
        if obj.community_id != community_id:
            violation = TenantViolation(
                resource=resource,
                resource_id=resource_id,
                actor_community_id=community_id,
                resource_community_id=obj.community_id,
                actor_user_id=actor_user_id,
                operation=operation,
                ip=self.ip,
                user_agent=self.user_agent,
            )
            if self.deferred is not None:
                self.deferred.append(violation)
            else:
                self.report(self.db, violation, audit=self.audit, signals=self.signals)
            raise not_found
        return obj

    @staticmethod
    def report(
        db: Session,
        violation: TenantViolation,
        audit: Optional[AuditService] = None,
        signals: Optional[SecurityEventService] = None,
    ) -> None:
        """Write the violation to the audit chain and raise a CRITICAL signal, then commit."""
        audit = audit or audit_service
        signals = signals or security_event_service
        logger.warning(
            "Cross-community %s access: user=%s resource=%s/%s community=%s owner=%s",
            violation.operation, violation.actor_user_id, violation.resource,
            violation.resource_id, violation.actor_community_id,
            violation.resource_community_id,
        )
        metadata = {
            "resource": violation.resource,
            "resourceId": violation.resource_id,
            "resourceCommunityId": violation.resource_community_id,
            "operation": violation.operation,
        }
        audit.append_best_effort(db, record(
            AuditEvent.TENANT_VIOLATION,
            community_id=violation.actor_community_id,
            user_id=violation.actor_user_id,
            ip=violation.ip,
            user_agent=violation.user_agent,
            **metadata,
        ))
        signals.create_event(
            db,
            Severity.CRITICAL,
            CROSS_TENANT_ACCESS_ATTEMPT,
            community_id=violation.actor_community_id,
            user_id=violation.actor_user_id,
            metadata=metadata,
        )
        db.commit()
