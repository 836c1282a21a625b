"""
Tests for the two-person approval workflow.

These tests prove:
- A high-risk command waits for a second staff member before it applies
- The decision, then the command's own events, follow the request in the chain
- Requesters cannot decide their own requests, and decisions are final
- Everything is re-checked at decision time
"""
import json

import pytest

from modconsole.commands.engine import PENDING_APPROVAL, CommandEngine
from modconsole.core.exceptions import (
    AlreadyDecidedError, CooldownActiveError, ForbiddenError, NotFoundError,
    SelfApprovalForbiddenError, SensitiveModeRequiredError, ValidationFailedError,
)
from modconsole.models.approval import ApprovalRequest, CommandExecution
from modconsole.models.audit_log import AuditLog
from modconsole.models.enums import ActionType, ApprovalStatus, RiskLevel
from modconsole.models.moderation import ModerationAction
from modconsole.models.security import SecurityEvent
from modconsole.models.user import User
from modconsole.services.audit_chain import verify_chain
from modconsole.services.membership_service import membership_service

REASON = "Griefing the spawn area"


@pytest.fixture
def staff(community, make_user, grant_sensitive_mode):
    requester = make_user(community, role="MOD")
    approver = make_user(community, role="ADMIN")
    return {
        "requester": requester,
        "approver": approver,
        "requester_token": grant_sensitive_mode(requester, "requester-session", minutes=60),
        "approver_token": grant_sensitive_mode(approver, "approver-session", minutes=60),
    }


@pytest.fixture
def pending_ban(db_session, community, make_player, staff, clock):
    player = make_player(community)
    result = CommandEngine(db_session, clock=clock).run_command(
        staff["requester"].id, community.id, "ban.perm",
        {"playerId": player.id, "reason": REASON},
        session_token=staff["requester_token"],
    )
    assert result.status == PENDING_APPROVAL
    return result.approval_id


def _status(db_session, approval_id):
    return db_session.get(ApprovalRequest, approval_id, populate_existing=True).status


class TestApproval:

    def test_second_person_applies_the_command(self, db_session, community, staff, pending_ban, clock):
        clock.advance(seconds=30)
        result = CommandEngine(db_session, clock=clock).decide_approval(
            pending_ban, staff["approver"].id, "approve",
            session_token=staff["approver_token"], community_id=community.id,
        )

        assert result.status == ApprovalStatus.APPROVED
        approval = db_session.get(ApprovalRequest, pending_ban)
        assert approval.status == ApprovalStatus.APPROVED
        assert approval.decided_by_user_id == staff["approver"].id
        assert approval.decided_at == clock()

        action = db_session.query(ModerationAction).one()
        assert action.type == ActionType.PERM_BAN
        assert action.moderator_user_id == staff["requester"].id

        execution = db_session.query(CommandExecution).one()
        assert execution.approval_request_id == pending_ban
        assert execution.user_id == staff["requester"].id

        entries = db_session.query(AuditLog).order_by(AuditLog.chain_index).all()
        assert [e.event_type for e in entries] == [
            "approval.requested", "approval.decided", "action.created", "command.executed",
        ]
        executed = json.loads(entries[-1].metadata_json)
        assert executed["approvalId"] == pending_ban
        assert executed["approvedByUserId"] == staff["approver"].id
        assert verify_chain(entries).ok

    def test_reject(self, db_session, community, staff, pending_ban, clock):
        result = CommandEngine(db_session, clock=clock).decide_approval(
            pending_ban, staff["approver"].id, "reject", reason="Not enough evidence",
            session_token=staff["approver_token"], community_id=community.id,
        )
        assert result.status == ApprovalStatus.REJECTED
        approval = db_session.get(ApprovalRequest, pending_ban)
        assert approval.reason == "Not enough evidence"
        assert db_session.query(ModerationAction).count() == 0

    def test_decisions_are_final(self, db_session, community, staff, pending_ban, clock):
        engine = CommandEngine(db_session, clock=clock)
        engine.decide_approval(
            pending_ban, staff["approver"].id, "reject",
            session_token=staff["approver_token"], community_id=community.id,
        )
        with pytest.raises(AlreadyDecidedError):
            engine.decide_approval(
                pending_ban, staff["approver"].id, "approve",
                session_token=staff["approver_token"], community_id=community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.REJECTED

    def test_reject_does_not_need_sensitive_mode(self, db_session, community, staff, pending_ban, clock):
        result = CommandEngine(db_session, clock=clock).decide_approval(
            pending_ban, staff["approver"].id, "reject",
            session_token="no-grant-for-this-session", community_id=community.id,
        )
        assert result.status == ApprovalStatus.REJECTED
        assert db_session.query(ModerationAction).count() == 0

    def test_unknown_decision(self, db_session, community, staff, pending_ban, clock):
        with pytest.raises(ValidationFailedError):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, staff["approver"].id, "maybe", community_id=community.id,
            )


class TestDecisionChecks:

    def test_self_approval(self, db_session, community, make_user, staff, pending_ban, clock):
        requester = staff["requester"]
        with pytest.raises(SelfApprovalForbiddenError):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, requester.id, "approve",
                session_token=staff["requester_token"], community_id=community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.PENDING
        assert db_session.query(ModerationAction).count() == 0

    def test_requester_cannot_reject_their_own_request(self, db_session, community, staff, pending_ban, clock):
        with pytest.raises(SelfApprovalForbiddenError):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, staff["requester"].id, "reject",
                session_token=staff["requester_token"], community_id=community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.PENDING

    def test_requester_cooldown_is_checked_again_at_decision_time(
        self, db_session, community, make_player, staff, pending_ban, clock,
    ):
        other = make_player(community, "another")
        clock.advance(seconds=61)
        second = CommandEngine(db_session, clock=clock).run_command(
            staff["requester"].id, community.id, "ban.perm",
            {"playerId": other.id, "reason": REASON},
            session_token=staff["requester_token"],
        ).approval_id

        engine = CommandEngine(db_session, clock=clock)
        engine.decide_approval(
            pending_ban, staff["approver"].id, "approve",
            session_token=staff["approver_token"], community_id=community.id,
        )
        clock.advance(seconds=20)
        with pytest.raises(CooldownActiveError) as exc:
            engine.decide_approval(
                second, staff["approver"].id, "approve",
                session_token=staff["approver_token"], community_id=community.id,
            )
        assert exc.value.remaining_seconds == 40
        assert _status(db_session, second) == ApprovalStatus.PENDING
        assert db_session.query(ModerationAction).count() == 1

    def test_decider_needs_decision_rights(self, db_session, community, make_user, pending_ban, clock):
        other_mod = make_user(community, role="MOD")
        with pytest.raises(ForbiddenError):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, other_mod.id, "approve", community_id=community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.PENDING

    def test_decider_needs_sensitive_mode(self, db_session, community, staff, pending_ban, clock):
        with pytest.raises(SensitiveModeRequiredError):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, staff["approver"].id, "approve",
                session_token="someone-else", community_id=community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.PENDING

    def test_requester_disabled_before_decision(self, db_session, community, staff, pending_ban, clock):
        db_session.get(User, staff["requester"].id).disabled_at = clock()
        db_session.commit()
        with pytest.raises(ForbiddenError, match="Account disabled."):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, staff["approver"].id, "approve",
                session_token=staff["approver_token"], community_id=community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.PENDING
        assert db_session.query(AuditLog).filter(AuditLog.event_type == "approval.decided").count() == 0

    def test_payload_that_no_longer_validates(self, db_session, community, staff, pending_ban, clock):
        approval = db_session.get(ApprovalRequest, pending_ban)
        payload = json.loads(approval.payload_json)
        payload["input"]["reason"] = "short"
        approval.payload_json = json.dumps(payload)
        db_session.commit()

        with pytest.raises(ValidationFailedError, match="Approval payload is invalid for the command."):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, staff["approver"].id, "approve",
                session_token=staff["approver_token"], community_id=community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.PENDING

    def test_foreign_approval_looks_missing(
        self, db_session, community, other_community, make_user, grant_sensitive_mode, pending_ban, clock,
    ):
        outsider = make_user(other_community, role="ADMIN")
        token = grant_sensitive_mode(outsider, "outsider-session")
        with pytest.raises(NotFoundError, match="Approval request not found."):
            CommandEngine(db_session, clock=clock).decide_approval(
                pending_ban, outsider.id, "approve",
                session_token=token, community_id=other_community.id,
            )
        assert _status(db_session, pending_ban) == ApprovalStatus.PENDING
        assert db_session.query(SecurityEvent).filter(SecurityEvent.user_id == outsider.id).count() == 1


class TestSubmission:

    def test_pending_high_risk_requests_cool_down(
        self, db_session, community, make_player, staff, pending_ban, clock,
    ):
        other = make_player(community, "another")
        clock.advance(seconds=15)
        with pytest.raises(CooldownActiveError) as exc:
            CommandEngine(db_session, clock=clock).run_command(
                staff["requester"].id, community.id, "ban.perm",
                {"playerId": other.id, "reason": REASON},
                session_token=staff["requester_token"],
            )
        assert exc.value.remaining_seconds == 45
        assert exc.value.message == "High-risk requests are cooling down. Try again in 45s."
        assert db_session.query(ApprovalRequest).count() == 1

    def test_new_request_allowed_once_the_window_passes(
        self, db_session, community, make_player, staff, pending_ban, clock,
    ):
        other = make_player(community, "another")
        clock.advance(seconds=61)
        result = CommandEngine(db_session, clock=clock).run_command(
            staff["requester"].id, community.id, "ban.perm",
            {"playerId": other.id, "reason": REASON},
            session_token=staff["requester_token"],
        )
        assert result.status == PENDING_APPROVAL
        assert db_session.query(ApprovalRequest).filter(
            ApprovalRequest.status == ApprovalStatus.PENDING,
        ).count() == 2

    def test_payload_keeps_validated_input(self, db_session, pending_ban):
        approval = db_session.get(ApprovalRequest, pending_ban)
        payload = json.loads(approval.payload_json)
        assert payload["commandId"] == "ban.perm"
        assert payload["input"]["reason"] == REASON
        assert approval.risk_level == RiskLevel.HIGH


class TestMembershipApproval:

    def test_join_request_is_approved_by_staff(self, db_session, community, make_user, clock):
        admin = make_user(community, role="ADMIN")
        newcomer = make_user()
        roles = membership_service.ensure_system_roles(db_session, community.id)
        engine = CommandEngine(db_session, clock=clock)

        approval = engine.approvals.request_membership(newcomer.id, community.id, roles["VIEWER"].id)
        assert approval.risk_level == RiskLevel.MEDIUM
        assert not membership_service.is_member(db_session, community.id, newcomer.id)

        result = engine.decide_approval(approval.id, admin.id, "approve", community_id=community.id)

        assert result.status == ApprovalStatus.APPROVED
        membership = membership_service.get_membership(db_session, community.id, newcomer.id)
        assert membership.role.name == "VIEWER"
        assert [e.event_type for e in db_session.query(AuditLog).order_by(AuditLog.chain_index)] == [
            "approval.requested", "approval.decided", "membership.created",
        ]
