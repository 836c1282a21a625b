"""Command execution engine.

``run_command`` turns a validated intent into either an applied change or
a pending approval:

    lookup -> load actor -> authorize -> enabled? -> validate -> policy
      HIGH:  sensitive mode? -> cooldown -> two-person rule? -> approval
      else:  execute

``execute_command`` is shared with approval decisions. It re-authorizes,
re-checks the kill switch, runs the registered handler, appends the
``command.executed`` audit entry and writes the CommandExecution row, all
in the caller's single transaction.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session

from modconsole.commands.approvals import ApprovalWorkflow
from modconsole.commands.handlers import CommandContext, get_handler
from modconsole.commands.registry import CommandDefinition, get_command_definition
from modconsole.commands.schemas import CommandInput
from modconsole.commands.signals import default_dispatcher
from modconsole.core.clock import Clock, remaining_seconds, utcnow
from modconsole.core.exceptions import CommandDisabledError, CooldownActiveError
from modconsole.core.security import Actor, authorize
from modconsole.db.session import CircuitBreaker, db_breaker
from modconsole.models.approval import CommandExecution
from modconsole.models.enums import AuditEvent, RiskLevel
from modconsole.services.audit_service import AuditService
from modconsole.services.command_toggles import command_toggle_service
from modconsole.services.membership_service import membership_service
from modconsole.services.security_events import SecurityEventService
from modconsole.services.security_settings import get_security_settings
from modconsole.services.sensitive_mode import SensitiveModeService
from modconsole.services.tenant_guard import TenantGuard

logger = logging.getLogger("modconsole.commands")

EXECUTED = "executed"
PENDING_APPROVAL = "pending_approval"


@dataclass
class CommandRunResult:
    status: str
    message: str
    approval_id: Optional[str] = None
    redirect_url: Optional[str] = None


class CommandEngine:
    """Orchestrates one session's command runs and approval decisions."""

    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        dispatcher=None,
        breaker: Optional[CircuitBreaker] = None,
        audit: Optional[AuditService] = None,
        signals: Optional[SecurityEventService] = None,
    ):
        self.db = db
        self.clock = clock
        self.audit = audit or AuditService(clock)
        self.signals = signals or SecurityEventService(clock, audit=self.audit)
        self.sensitive_mode = SensitiveModeService(clock, audit=self.audit)
        self.breaker = breaker or db_breaker
        self.dispatcher = dispatcher or default_dispatcher(self.signals)
        self.approvals = ApprovalWorkflow(self)

    @contextmanager
    def unit_of_work(self, ip: Optional[str] = None, user_agent: Optional[str] = None) -> Iterator[TenantGuard]:
        """One transaction: commit on success, roll back on any error.

        Tenant violations found inside are recorded after the rollback, in a
        transaction of their own, so the telemetry survives.
        """
        deferred: list = []
        guard = TenantGuard(
            self.db, deferred=deferred, audit=self.audit, signals=self.signals,
            ip=ip, user_agent=user_agent,
        )
        try:
            yield guard
            self.db.commit()
        except BaseException:
            self.db.rollback()
            raise
        finally:
            for violation in deferred:
                try:
                    TenantGuard.report(self.db, violation, audit=self.audit, signals=self.signals)
                except Exception:
                    self.db.rollback()
                    logger.exception("Failed to record tenant violation %s", violation)

    def load_actor(self, user_id: str, community_id: str) -> Actor:
        return self.breaker.call(membership_service.load_actor, self.db, user_id, community_id)

    def require_enabled(self, community_id: str, command_id: str) -> None:
        if not command_toggle_service.is_enabled(self.db, community_id, command_id):
            raise CommandDisabledError()

    def enforce_cooldown(self, community_id: str, user_id: str, command_id: str, seconds: int) -> None:
        """Reject a repeat of the same command by the same user inside the window."""
        if seconds <= 0:
            return
        now = self.clock()
        recent = (
            self.db.query(CommandExecution.created_at)
            .filter(
                CommandExecution.community_id == community_id,
                CommandExecution.user_id == user_id,
                CommandExecution.command_id == command_id,
                CommandExecution.created_at >= now - timedelta(seconds=seconds),
            )
            .order_by(CommandExecution.created_at.desc())
            .first()
        )
        if recent is not None:
            raise CooldownActiveError(remaining_seconds(recent.created_at, seconds, now))

    def run_command(
        self,
        actor_user_id: str,
        community_id: str,
        command_id: str,
        raw_input: Any,
        session_token: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> CommandRunResult:
        cmd = get_command_definition(command_id)

        with self.unit_of_work(ip, user_agent) as guard:
            actor = self.load_actor(actor_user_id, community_id)
            authorize(actor, cmd.required_permission)
            self.require_enabled(community_id, cmd.id)
            data = cmd.parse(raw_input)
            policy = get_security_settings(self.db, community_id)

            result = None
            if cmd.risk_level == RiskLevel.HIGH:
                if policy.require_sensitive_mode_for_high_risk:
                    self.sensitive_mode.require(self.db, actor.id, session_token)
                self.enforce_cooldown(
                    community_id, actor.id, cmd.id, policy.high_risk_command_cooldown_seconds
                )
                if policy.two_person_rule:
                    approval = self.approvals.submit(actor, cmd, data, policy, ip, user_agent)
                    result = CommandRunResult(
                        status=PENDING_APPROVAL,
                        message="Approval requested. Awaiting a second staff decision.",
                        approval_id=approval.id,
                    )
            if result is None:
                result = self.execute_command(
                    guard, actor, cmd, data, ip, user_agent, request_id=request_id,
                )

        logger.info(
            "Command %s by %s in %s: %s", cmd.id, actor.id, community_id, result.status,
        )
        if result.status == PENDING_APPROVAL:
            self.dispatcher.approval_submitted(self.db, community_id, actor.id)
        elif cmd.risk_level == RiskLevel.HIGH:
            self.dispatcher.high_risk_executed(self.db, community_id, actor.id)
        return result

    def execute_command(
        self,
        guard: TenantGuard,
        actor: Actor,
        cmd: CommandDefinition,
        data: CommandInput,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        approval_id: Optional[str] = None,
        approved_by_user_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> CommandRunResult:
        """Apply a validated command inside the current unit of work."""
        authorize(actor, cmd.required_permission)
        self.require_enabled(actor.community_id, cmd.id)

        ctx = CommandContext(
            db=self.db,
            actor=actor,
            community_id=actor.community_id,
            guard=guard,
            audit=self.audit,
            clock=self.clock,
            ip=ip,
            user_agent=user_agent,
        )
        redirect_url = get_handler(cmd.id)(ctx, data)

        ctx.audit_event(
            AuditEvent.COMMAND_EXECUTED,
            commandId=cmd.id,
            riskLevel=cmd.risk_level.value,
            approvalId=approval_id,
            approvedByUserId=approved_by_user_id,
            requestId=request_id,
        )
        self.db.add(CommandExecution(
            community_id=actor.community_id,
            command_id=cmd.id,
            risk_level=cmd.risk_level,
            user_id=actor.id,
            approval_request_id=approval_id,
            created_at=self.clock(),
        ))
        self.db.flush()

        return CommandRunResult(
            status=EXECUTED,
            message=f"{cmd.name} completed.",
            redirect_url=redirect_url,
        )

    def decide_approval(self, *args, **kwargs):
        """See ApprovalWorkflow.decide."""
        return self.approvals.decide(*args, **kwargs)
