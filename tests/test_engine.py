"""Tests for direct command execution through the engine."""
import json

import pytest

from modconsole.commands.engine import EXECUTED, PENDING_APPROVAL, CommandEngine
from modconsole.core.exceptions import (
    CommandDisabledError, CooldownActiveError, ForbiddenError, NotFoundError,
    SensitiveModeRequiredError, UnknownCommandError, ValidationFailedError,
)
from modconsole.models.approval import CommandExecution
from modconsole.models.audit_log import AuditLog
from modconsole.models.enums import ActionType, CaseStatus, PlayerStatus, ReportStatus
from modconsole.models.moderation import Case, CasePlayer, ModerationAction, Player, Report
from modconsole.models.user import User
from modconsole.services.audit_service import AuditService
from modconsole.services.audit_chain import verify_chain
from modconsole.services.command_toggles import command_toggle_service
from modconsole.services.membership_service import membership_service
from modconsole.services.security_settings import SecuritySettings, update_security_settings

REASON = "Griefing the spawn area"


def _events(db_session):
    return [e.event_type for e in db_session.query(AuditLog).order_by(AuditLog.chain_index)]


def _single_person_policy(db_session, community, user, clock, cooldown=60):
    update_security_settings(
        db_session, community.id, user.id,
        SecuritySettings(two_person_rule=False, high_risk_command_cooldown_seconds=cooldown),
        audit=AuditService(clock),
    )
    db_session.commit()


class TestLowRiskCommands:

    def test_warning_is_applied_and_audited(self, db_session, community, make_user, make_player, clock):
        mod = make_user(community, role="MOD")
        player = make_player(community)

        result = CommandEngine(db_session, clock=clock).run_command(
            mod.id, community.id, "warning.create",
            {"playerId": player.id, "reason": REASON}, ip="10.0.0.5", user_agent="pytest",
        )

        assert result.status == EXECUTED
        assert result.message == "Create Warning completed."
        action = db_session.query(ModerationAction).one()
        assert action.type == ActionType.WARNING
        assert action.moderator_user_id == mod.id
        assert _events(db_session) == ["action.created", "command.executed"]
        executed = db_session.query(AuditLog).filter(AuditLog.event_type == "command.executed").one()
        assert json.loads(executed.metadata_json) == {"commandId": "warning.create", "riskLevel": "LOW"}
        assert executed.ip == "10.0.0.5"
        assert db_session.query(CommandExecution).count() == 1
        assert verify_chain(db_session.query(AuditLog).all()).ok

    def test_unknown_command(self, db_session, community, make_user, clock):
        mod = make_user(community)
        with pytest.raises(UnknownCommandError):
            CommandEngine(db_session, clock=clock).run_command(mod.id, community.id, "server.wipe", {})

    def test_missing_permission(self, db_session, community, make_user, make_player, clock):
        viewer = make_user(community, role="VIEWER")
        player = make_player(community)
        with pytest.raises(ForbiddenError):
            CommandEngine(db_session, clock=clock).run_command(
                viewer.id, community.id, "warning.create", {"playerId": player.id, "reason": REASON},
            )
        assert db_session.query(ModerationAction).count() == 0

    def test_non_member(self, db_session, community, other_community, make_user, make_player, clock):
        outsider = make_user(other_community, role="OWNER")
        player = make_player(community)
        with pytest.raises(ForbiddenError, match="Not a member of this community."):
            CommandEngine(db_session, clock=clock).run_command(
                outsider.id, community.id, "warning.create", {"playerId": player.id, "reason": REASON},
            )

    def test_disabled_account(self, db_session, community, make_user, make_player, clock):
        mod = make_user(community)
        player = make_player(community)
        db_session.get(User, mod.id).disabled_at = clock()
        db_session.commit()
        with pytest.raises(ForbiddenError, match="Account disabled."):
            CommandEngine(db_session, clock=clock).run_command(
                mod.id, community.id, "warning.create", {"playerId": player.id, "reason": REASON},
            )

    def test_disabled_command(self, db_session, community, make_user, make_player, clock):
        admin = make_user(community, role="ADMIN")
        player = make_player(community)
        actor = membership_service.load_actor(db_session, admin.id, community.id)
        command_toggle_service.set_enabled(db_session, actor, "warning.create", False)
        db_session.commit()

        with pytest.raises(CommandDisabledError):
            CommandEngine(db_session, clock=clock).run_command(
                admin.id, community.id, "warning.create", {"playerId": player.id, "reason": REASON},
            )
        assert _events(db_session) == ["command.toggled"]

    def test_invalid_input_writes_nothing(self, db_session, community, make_user, make_player, clock):
        mod = make_user(community)
        player = make_player(community)
        with pytest.raises(ValidationFailedError, match="Reason must be at least 8 characters."):
            CommandEngine(db_session, clock=clock).run_command(
                mod.id, community.id, "warning.create", {"playerId": player.id, "reason": "meh"},
            )
        assert db_session.query(AuditLog).count() == 0
        assert db_session.query(CommandExecution).count() == 0

    def test_flag_player(self, db_session, community, make_user, make_player, clock):
        mod = make_user(community)
        player = make_player(community)
        CommandEngine(db_session, clock=clock).run_command(
            mod.id, community.id, "player.flag", {"playerId": player.id, "status": "WATCHED"},
        )
        assert db_session.get(Player, player.id).status == PlayerStatus.WATCHED

    def test_assign_case_to_non_member(self, db_session, community, other_community, make_user, make_case, clock):
        mod = make_user(community)
        stranger = make_user(other_community)
        case = make_case(community)
        with pytest.raises(ValidationFailedError, match="Assignee must be a member of this community."):
            CommandEngine(db_session, clock=clock).run_command(
                mod.id, community.id, "case.assign", {"caseId": case.id, "userId": stranger.id},
            )

    def test_export_packet_returns_redirect(self, db_session, community, make_user, make_case, clock):
        viewer = make_user(community, role="VIEWER")
        case = make_case(community)
        result = CommandEngine(db_session, clock=clock).run_command(
            viewer.id, community.id, "case.export_packet", {"caseId": case.id},
        )
        assert result.redirect_url == f"/app/cases/{case.id}/export"
        assert _events(db_session) == ["case.exported", "command.executed"]


class TestMediumRiskCommands:

    def test_temp_ban(self, db_session, community, make_user, make_player, clock):
        mod = make_user(community, role="TRIAL_MOD")
        player = make_player(community)
        CommandEngine(db_session, clock=clock).run_command(
            mod.id, community.id, "ban.temp",
            {"playerId": player.id, "durationMinutes": 120, "reason": REASON, "evidenceUrls": "https://clips.example/1"},
        )
        action = db_session.query(ModerationAction).one()
        assert action.type == ActionType.TEMP_BAN
        assert action.duration_minutes == 120
        assert json.loads(action.evidence_urls_json) == ["https://clips.example/1"]

    def test_extend_temp_ban(self, db_session, community, make_user, make_player, make_action, clock):
        mod = make_user(community)
        action = make_action(community, make_player(community))
        CommandEngine(db_session, clock=clock).run_command(
            mod.id, community.id, "ban.extend",
            {"actionId": action.id, "extraMinutes": 30, "reason": "More evidence"},
        )
        assert db_session.get(ModerationAction, action.id).duration_minutes == 90
        assert _events(db_session) == ["action.updated", "command.executed"]

    def test_only_temp_bans_extend(self, db_session, community, make_user, make_player, make_action, clock):
        mod = make_user(community)
        warning = make_action(community, make_player(community), ActionType.WARNING)
        with pytest.raises(ValidationFailedError, match="Only TEMP_BAN actions can be extended."):
            CommandEngine(db_session, clock=clock).run_command(
                mod.id, community.id, "ban.extend",
                {"actionId": warning.id, "extraMinutes": 30, "reason": "More evidence"},
            )

    def test_case_from_report(self, db_session, community, make_user, make_player, make_report, clock):
        mod = make_user(community)
        accused = make_player(community)
        report = make_report(community, accused=accused, reporter_name="speedy")

        CommandEngine(db_session, clock=clock).run_command(
            mod.id, community.id, "case.from_report", {"reportId": report.id, "assignToUserId": mod.id},
        )

        case = db_session.query(Case).one()
        assert case.status == CaseStatus.OPEN
        assert case.title == "Destroyed spawn builds"
        assert case.assigned_to_user_id == mod.id
        assert "Reporter: speedy" in case.description
        assert db_session.query(CasePlayer).one().player_id == accused.id
        report = db_session.get(Report, report.id)
        assert report.case_id == case.id
        assert report.status == ReportStatus.IN_REVIEW

    def test_bulk_resolve(self, db_session, community, make_user, make_report, clock):
        mod = make_user(community)
        reports = [make_report(community, summary=f"report {i}") for i in range(3)]
        CommandEngine(db_session, clock=clock).run_command(
            mod.id, community.id, "report.bulk_resolve",
            {"reportIds": [r.id for r in reports], "resolution": "RESOLVED"},
        )
        assert {r.status for r in db_session.query(Report)} == {ReportStatus.RESOLVED}

    def test_bulk_resolve_with_a_foreign_id_changes_nothing(
        self, db_session, community, other_community, make_user, make_report, clock,
    ):
        mod = make_user(community)
        mine = make_report(community)
        theirs = make_report(other_community)
        with pytest.raises(NotFoundError, match="Report not found."):
            CommandEngine(db_session, clock=clock).run_command(
                mod.id, community.id, "report.bulk_resolve",
                {"reportIds": [mine.id, theirs.id], "resolution": "REJECTED"},
            )
        assert db_session.get(Report, mine.id).status == ReportStatus.OPEN
        assert db_session.get(Report, theirs.id).status == ReportStatus.OPEN


class TestHighRiskCommands:

    def test_sensitive_mode_required(self, db_session, community, make_user, make_player, clock):
        mod = make_user(community)
        player = make_player(community)
        with pytest.raises(SensitiveModeRequiredError):
            CommandEngine(db_session, clock=clock).run_command(
                mod.id, community.id, "ban.perm", {"playerId": player.id, "reason": REASON},
                session_token="no-grant",
            )
        assert db_session.query(ModerationAction).count() == 0

    def test_expired_grant_does_not_count(
        self, db_session, community, make_user, make_player, grant_sensitive_mode, clock,
    ):
        mod = make_user(community)
        player = make_player(community)
        token = grant_sensitive_mode(mod, minutes=5)
        clock.advance(minutes=6)
        with pytest.raises(SensitiveModeRequiredError):
            CommandEngine(db_session, clock=clock).run_command(
                mod.id, community.id, "ban.perm", {"playerId": player.id, "reason": REASON},
                session_token=token,
            )

    def test_two_person_rule_defers_the_ban(
        self, db_session, community, make_user, make_player, grant_sensitive_mode, clock,
    ):
        mod = make_user(community)
        player = make_player(community)
        token = grant_sensitive_mode(mod)

        result = CommandEngine(db_session, clock=clock).run_command(
            mod.id, community.id, "ban.perm", {"playerId": player.id, "reason": REASON},
            session_token=token,
        )

        assert result.status == PENDING_APPROVAL
        assert result.approval_id
        assert db_session.query(ModerationAction).count() == 0
        assert _events(db_session) == ["approval.requested"]

    def test_cooldown_between_direct_executions(
        self, db_session, community, make_user, make_player, grant_sensitive_mode, clock,
    ):
        owner = make_user(community, role="OWNER")
        mod = make_user(community)
        first, second = make_player(community, "a"), make_player(community, "b")
        _single_person_policy(db_session, community, owner, clock, cooldown=60)
        token = grant_sensitive_mode(mod, minutes=30)
        engine = CommandEngine(db_session, clock=clock)

        result = engine.run_command(
            mod.id, community.id, "ban.perm", {"playerId": first.id, "reason": REASON}, session_token=token,
        )
        assert result.status == EXECUTED

        clock.advance(seconds=20)
        with pytest.raises(CooldownActiveError) as exc:
            engine.run_command(
                mod.id, community.id, "ban.perm", {"playerId": second.id, "reason": REASON}, session_token=token,
            )
        assert exc.value.remaining_seconds == 40

        clock.advance(seconds=41)
        result = engine.run_command(
            mod.id, community.id, "ban.perm", {"playerId": second.id, "reason": REASON}, session_token=token,
        )
        assert result.status == EXECUTED
        assert db_session.query(ModerationAction).filter(ModerationAction.type == ActionType.PERM_BAN).count() == 2

    def test_remove_ban(
        self, db_session, community, make_user, make_player, make_action, grant_sensitive_mode, clock,
    ):
        admin = make_user(community, role="ADMIN")
        _single_person_policy(db_session, community, admin, clock)
        action = make_action(community, make_player(community), ActionType.PERM_BAN)
        token = grant_sensitive_mode(admin)

        CommandEngine(db_session, clock=clock).run_command(
            admin.id, community.id, "ban.remove", {"actionId": action.id, "reason": "Appeal accepted"},
            session_token=token,
        )

        action = db_session.get(ModerationAction, action.id)
        assert action.revoked_at == clock()
        assert action.revoked_by_user_id == admin.id
        assert action.revoked_reason == "Appeal accepted"
