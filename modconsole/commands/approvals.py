"""Two-person approval workflow.

PENDING -> APPROVED or PENDING -> REJECTED; both are terminal. A decision
re-checks everything that may have changed since submission (the decider's
rights, sensitive mode, the requester's cooldown, the command schema) in
the same transaction that applies the command.
"""

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from modconsole.commands.registry import CommandDefinition, get_command_definition
from modconsole.commands.schemas import CommandInput
from modconsole.core.clock import remaining_seconds
from modconsole.core.exceptions import (
    AlreadyDecidedError, NotFoundError, SelfApprovalForbiddenError,
    ValidationFailedError, CooldownActiveError,
)
from modconsole.core.permissions import Permission
from modconsole.core.security import Actor, authorize
from modconsole.models.approval import ApprovalRequest
from modconsole.models.community import CommunityRole
from modconsole.models.enums import ApprovalStatus, AuditEvent, RiskLevel
from modconsole.services.audit_service import record
from modconsole.services.membership_service import membership_service
from modconsole.services.security_settings import SecuritySettings, get_security_settings

logger = logging.getLogger("modconsole.approvals")

INVITE_JOIN = "invite.join"

APPROVE = "approve"
REJECT = "reject"
_DECISIONS = {
    "approve": APPROVE, "approved": APPROVE,
    "reject": REJECT, "rejected": REJECT,
}


@dataclass
class DecisionResult:
    approval_id: str
    status: ApprovalStatus
    message: str
    redirect_url: Optional[str] = None


class ApprovalWorkflow:
    """Bound to a CommandEngine, whose session, clock and services it shares."""

    def __init__(self, engine):
        self.engine = engine

    @property
    def db(self):
        return self.engine.db

    def _audit(self, guard_ip, guard_ua, approval: ApprovalRequest, user_id: str, event: AuditEvent, **metadata):
        self.engine.audit.append_strict(self.db, record(
            event,
            community_id=approval.community_id,
            user_id=user_id,
            ip=guard_ip,
            user_agent=guard_ua,
            approvalId=approval.id,
            **metadata,
        ))

    def submit(
        self,
        actor: Actor,
        cmd: CommandDefinition,
        data: CommandInput,
        policy: SecuritySettings,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ApprovalRequest:
        """Queue a validated HIGH-risk command for a second decision."""
        cooldown = policy.high_risk_command_cooldown_seconds
        now = self.engine.clock()
        if cooldown > 0:
            pending = (
                self.db.query(ApprovalRequest.created_at)
                .filter(
                    ApprovalRequest.community_id == actor.community_id,
                    ApprovalRequest.status == ApprovalStatus.PENDING,
                    ApprovalRequest.risk_level == RiskLevel.HIGH,
                    ApprovalRequest.requested_by_user_id == actor.id,
                    ApprovalRequest.created_at >= now - timedelta(seconds=cooldown),
                )
                .order_by(ApprovalRequest.created_at.desc())
                .first()
            )
            if pending is not None:
                remaining = remaining_seconds(pending.created_at, cooldown, now)
                raise CooldownActiveError(
                    remaining, f"High-risk requests are cooling down. Try again in {remaining}s."
                )

        approval = ApprovalRequest(
            community_id=actor.community_id,
            status=ApprovalStatus.PENDING,
            risk_level=cmd.risk_level,
            requested_by_user_id=actor.id,
            payload_json=json.dumps({
                "commandId": cmd.id,
                "input": data.model_dump(by_alias=True, mode="json"),
            }),
            created_at=now,
        )
        self.db.add(approval)
        self.db.flush()
        self._audit(
            ip, user_agent, approval, actor.id, AuditEvent.APPROVAL_REQUESTED,
            commandId=cmd.id, riskLevel=cmd.risk_level.value,
        )
        return approval

    def request_membership(
        self,
        requester_user_id: str,
        community_id: str,
        role_id: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> ApprovalRequest:
        """Queue a pending community join for staff approval."""
        with self.engine.unit_of_work(ip, user_agent):
            role = self.db.get(CommunityRole, role_id)
            if role is None or role.community_id != community_id:
                raise NotFoundError("Role not found.")
            approval = ApprovalRequest(
                community_id=community_id,
                status=ApprovalStatus.PENDING,
                risk_level=RiskLevel.MEDIUM,
                requested_by_user_id=requester_user_id,
                payload_json=json.dumps({"kind": INVITE_JOIN, "roleId": role_id}),
                created_at=self.engine.clock(),
            )
            self.db.add(approval)
            self.db.flush()
            self._audit(
                ip, user_agent, approval, requester_user_id, AuditEvent.APPROVAL_REQUESTED,
                kind=INVITE_JOIN, roleId=role_id,
            )
        self.engine.dispatcher.approval_submitted(self.db, community_id, requester_user_id)
        return approval

    def decide(
        self,
        approval_id: str,
        decider_user_id: str,
        decision: str,
        session_token: Optional[str] = None,
        reason: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        community_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> DecisionResult:
        """Approve or reject a pending request.

        With ``community_id`` the request must belong to that community;
        anything else is reported as a tenant violation and surfaces as
        not-found.
        """
        verdict = _DECISIONS.get(str(decision).strip().lower())
        if verdict is None:
            raise ValidationFailedError("Decision must be approve or reject.")

        executed_high_risk = False
        with self.engine.unit_of_work(ip, user_agent) as guard:
            if community_id is not None:
                approval = guard.require_in_community(
                    "approval", approval_id, community_id, decider_user_id,
                    operation="decide", lock=True,
                )
            else:
                approval = (
                    self.db.query(ApprovalRequest)
                    .filter(ApprovalRequest.id == approval_id)
                    .with_for_update()
                    .populate_existing()
                    .first()
                )
                if approval is None:
                    raise NotFoundError("Approval request not found.")

            if approval.status != ApprovalStatus.PENDING:
                raise AlreadyDecidedError()
            if approval.requested_by_user_id == decider_user_id:
                raise SelfApprovalForbiddenError()

            decider = self.engine.load_actor(decider_user_id, approval.community_id)
            authorize(decider, Permission.APPROVALS_DECIDE)

            policy = get_security_settings(self.db, approval.community_id)
            if approval.risk_level == RiskLevel.HIGH and policy.require_sensitive_mode_for_high_risk:
                self.engine.sensitive_mode.require(self.db, decider.id, session_token)

            payload = json.loads(approval.payload_json)
            if verdict == REJECT:
                self._mark(approval, ApprovalStatus.REJECTED, decider.id, reason)
                self._audit(
                    ip, user_agent, approval, decider.id, AuditEvent.APPROVAL_DECIDED,
                    decision=ApprovalStatus.REJECTED.value, reason=reason,
                )
                result = DecisionResult(approval.id, ApprovalStatus.REJECTED, "Request rejected.")
            elif payload.get("kind") == INVITE_JOIN:
                result = self._approve_membership(approval, decider, payload, reason, ip, user_agent)
            else:
                result = self._approve_command(
                    guard, approval, decider, payload, policy, reason, ip, user_agent, request_id,
                )
                executed_high_risk = approval.risk_level == RiskLevel.HIGH

            requester_id = approval.requested_by_user_id
            target_community = approval.community_id

        logger.info("Approval %s %s by %s", approval_id, result.status.value, decider_user_id)
        if executed_high_risk:
            self.engine.dispatcher.high_risk_executed(self.db, target_community, requester_id)
        return result

    def _mark(self, approval: ApprovalRequest, status: ApprovalStatus, decider_id: str, reason: Optional[str]) -> None:
        approval.status = status
        approval.decided_by_user_id = decider_id
        approval.decided_at = self.engine.clock()
        approval.reason = reason
        self.db.flush()

    def _approve_command(
        self, guard, approval, decider, payload, policy, reason, ip, user_agent, request_id=None,
    ) -> DecisionResult:
        cmd = get_command_definition(payload.get("commandId"))
        requester = self.engine.load_actor(approval.requested_by_user_id, approval.community_id)

        if cmd.risk_level == RiskLevel.HIGH:
            self.engine.enforce_cooldown(
                approval.community_id, requester.id, cmd.id,
                policy.high_risk_command_cooldown_seconds,
            )
        try:
            data = cmd.parse(payload.get("input"))
        except ValidationFailedError as exc:
            raise ValidationFailedError("Approval payload is invalid for the command.") from exc

        # Decision is chained before the command's own events.
        self._audit(
            ip, user_agent, approval, decider.id, AuditEvent.APPROVAL_DECIDED,
            decision=ApprovalStatus.APPROVED.value, commandId=cmd.id, reason=reason,
        )
        executed = self.engine.execute_command(
            guard, requester, cmd, data, ip, user_agent,
            approval_id=approval.id, approved_by_user_id=decider.id, request_id=request_id,
        )
        self._mark(approval, ApprovalStatus.APPROVED, decider.id, reason)
        return DecisionResult(
            approval.id, ApprovalStatus.APPROVED,
            f"Approved. {executed.message}", redirect_url=executed.redirect_url,
        )

    def _approve_membership(self, approval, decider, payload, reason, ip, user_agent) -> DecisionResult:
        self._audit(
            ip, user_agent, approval, decider.id, AuditEvent.APPROVAL_DECIDED,
            decision=ApprovalStatus.APPROVED.value, kind=INVITE_JOIN, reason=reason,
        )
        membership = membership_service.upsert_membership(
            self.db, approval.community_id, approval.requested_by_user_id, payload.get("roleId"),
        )
        self.engine.audit.append_strict(self.db, record(
            AuditEvent.MEMBERSHIP_CREATED,
            community_id=approval.community_id,
            user_id=decider.id,
            ip=ip,
            user_agent=user_agent,
            targetUserId=membership.user_id,
            roleId=membership.role_id,
            approvalId=approval.id,
        ))
        self._mark(approval, ApprovalStatus.APPROVED, decider.id, reason)
        return DecisionResult(approval.id, ApprovalStatus.APPROVED, "Membership approved.")
