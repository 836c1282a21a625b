"""Per-command side effects, registered against catalog ids.

Every handler has the same shape: check that each referenced resource
belongs to the acting community (through the tenant guard), mutate, then
append a strict audit entry describing the change. Handlers run inside the
engine's unit of work and never commit.
"""

import json
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from modconsole.core.clock import Clock
from modconsole.core.exceptions import ValidationFailedError
from modconsole.core.security import Actor
from modconsole.models.enums import (
    ActionType, AuditEvent, CaseStatus, PlayerStatus, ReportStatus,
)
from modconsole.models.moderation import Case, CasePlayer, ModerationAction, Player
from modconsole.services.audit_service import AuditService, record
from modconsole.services.membership_service import membership_service
from modconsole.services.tenant_guard import TenantGuard


@dataclass
class CommandContext:
    db: Session
    actor: Actor
    community_id: str
    guard: TenantGuard
    audit: AuditService
    clock: Clock
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    def require(self, resource: str, resource_id: str, operation: str = "write", lock: bool = False):
        return self.guard.require_in_community(
            resource, resource_id, self.community_id, self.actor.id,
            operation=operation, lock=lock,
        )

    def audit_event(self, event: AuditEvent, **metadata) -> None:
        self.audit.append_strict(self.db, record(
            event,
            community_id=self.community_id,
            user_id=self.actor.id,
            ip=self.ip,
            user_agent=self.user_agent,
            **metadata,
        ))


Handler = Callable[[CommandContext, object], Optional[str]]

HANDLERS: dict[str, Handler] = {}


def handler(command_id: str):
    """Register the side effect for a catalog command id."""
    def register(fn: Handler) -> Handler:
        HANDLERS[command_id] = fn
        return fn
    return register


def get_handler(command_id: str) -> Handler:
    return HANDLERS[command_id]


def _record_action(
    ctx: CommandContext,
    player_id: str,
    action_type: ActionType,
    reason: str,
    duration_minutes: Optional[int] = None,
    evidence_urls: Optional[list] = None,
) -> ModerationAction:
    ctx.require("player", player_id)
    action = ModerationAction(
        community_id=ctx.community_id,
        player_id=player_id,
        type=action_type,
        moderator_user_id=ctx.actor.id,
        reason=reason,
        duration_minutes=duration_minutes,
        evidence_urls_json=json.dumps(evidence_urls or []),
        created_at=ctx.clock(),
    )
    ctx.db.add(action)
    ctx.db.flush()
    metadata = {"actionId": action.id, "playerId": player_id, "type": action_type.value}
    if duration_minutes is not None:
        metadata["durationMinutes"] = duration_minutes
    ctx.audit_event(AuditEvent.ACTION_CREATED, **metadata)
    return action


@handler("warning.create")
def create_warning(ctx: CommandContext, data) -> None:
    _record_action(ctx, data.player_id, ActionType.WARNING, data.reason)


@handler("kick.record")
def record_kick(ctx: CommandContext, data) -> None:
    _record_action(ctx, data.player_id, ActionType.KICK, data.reason)


@handler("ban.temp")
def temp_ban(ctx: CommandContext, data) -> None:
    _record_action(
        ctx, data.player_id, ActionType.TEMP_BAN, data.reason,
        duration_minutes=data.duration_minutes, evidence_urls=data.evidence_urls,
    )


@handler("ban.perm")
def perm_ban(ctx: CommandContext, data) -> None:
    _record_action(
        ctx, data.player_id, ActionType.PERM_BAN, data.reason,
        evidence_urls=data.evidence_urls,
    )


@handler("note.add")
def add_note(ctx: CommandContext, data) -> None:
    _record_action(ctx, data.player_id, ActionType.NOTE, data.note)


@handler("ban.extend")
def extend_ban(ctx: CommandContext, data) -> None:
    action = ctx.require("action", data.action_id, lock=True)
    if action.type != ActionType.TEMP_BAN:
        raise ValidationFailedError("Only TEMP_BAN actions can be extended.")
    if action.revoked_at is not None:
        raise ValidationFailedError("This action is already revoked.")

    action.duration_minutes = (action.duration_minutes or 0) + data.extra_minutes
    ctx.db.flush()
    ctx.audit_event(
        AuditEvent.ACTION_UPDATED,
        actionId=action.id,
        type=ActionType.TEMP_BAN.value,
        durationMinutes=action.duration_minutes,
        reason=data.reason,
    )


@handler("ban.remove")
def remove_ban(ctx: CommandContext, data) -> None:
    action = ctx.require("action", data.action_id, lock=True)
    if action.type not in (ActionType.TEMP_BAN, ActionType.PERM_BAN):
        raise ValidationFailedError("Only ban actions can be removed.")
    if action.revoked_at is not None:
        raise ValidationFailedError("This action is already revoked.")

    action.revoked_at = ctx.clock()
    action.revoked_by_user_id = ctx.actor.id
    action.revoked_reason = data.reason
    ctx.db.flush()
    ctx.audit_event(AuditEvent.ACTION_REVOKED, actionId=action.id, reason=data.reason)


@handler("player.flag")
def flag_player(ctx: CommandContext, data) -> None:
    player = ctx.require("player", data.player_id, lock=True)
    player.status = PlayerStatus(data.status)
    ctx.db.flush()
    ctx.audit_event(
        AuditEvent.PLAYER_UPDATED,
        playerId=player.id,
        status=data.status,
        reason=data.reason,
    )


@handler("case.from_report")
def case_from_report(ctx: CommandContext, data) -> None:
    report = ctx.require("report", data.report_id, lock=True)

    title = data.title or report.summary[:72]
    description = "\n".join(line for line in (
        f"Report: {report.summary}",
        f"Reporter: {report.reporter_name}" if report.reporter_name else None,
        f"Contact: {report.reporter_contact}" if report.reporter_contact else None,
    ) if line)

    # The accused player is linked only when it lives in the same community.
    accused_player_id = None
    if report.accused_player_id:
        accused = ctx.db.get(Player, report.accused_player_id)
        if accused is not None and accused.community_id == ctx.community_id:
            accused_player_id = accused.id

    if data.assign_to_user_id and not membership_service.is_member(
        ctx.db, ctx.community_id, data.assign_to_user_id
    ):
        raise ValidationFailedError("Assignee must be a member of this community.")

    case = Case(
        community_id=ctx.community_id,
        title=title,
        description=description,
        status=CaseStatus.OPEN,
        assigned_to_user_id=data.assign_to_user_id,
        created_at=ctx.clock(),
    )
    ctx.db.add(case)
    ctx.db.flush()
    if accused_player_id:
        ctx.db.add(CasePlayer(case_id=case.id, player_id=accused_player_id))

    report.case_id = case.id
    if report.status == ReportStatus.OPEN:
        report.status = ReportStatus.IN_REVIEW
    ctx.db.flush()
    ctx.audit_event(AuditEvent.CASE_CREATED, caseId=case.id, reportId=report.id)


@handler("case.assign")
def assign_case(ctx: CommandContext, data) -> None:
    case = ctx.require("case", data.case_id, lock=True)
    if not membership_service.is_member(ctx.db, ctx.community_id, data.user_id):
        raise ValidationFailedError("Assignee must be a member of this community.")
    case.assigned_to_user_id = data.user_id
    ctx.db.flush()
    ctx.audit_event(AuditEvent.CASE_UPDATED, caseId=case.id, assignedToUserId=data.user_id)


@handler("report.bulk_resolve")
def bulk_resolve_reports(ctx: CommandContext, data) -> None:
    ids = list(dict.fromkeys(data.report_ids))
    reports = [ctx.require("report", report_id, lock=True) for report_id in ids]
    resolution = ReportStatus(data.resolution)
    for report in reports:
        report.status = resolution
    ctx.db.flush()
    ctx.audit_event(
        AuditEvent.REPORT_STATUS_UPDATED,
        reportIds=ids,
        resolution=data.resolution,
        note=data.note,
    )


@handler("case.export_packet")
def export_case_packet(ctx: CommandContext, data) -> str:
    case = ctx.require("case", data.case_id, operation="read")
    ctx.audit_event(AuditEvent.CASE_EXPORTED, caseId=case.id)
    return f"/app/cases/{case.id}/export"
