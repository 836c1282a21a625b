"""Tests for burst detectors and auto-freeze."""
from datetime import timedelta

from modconsole.models.approval import ApprovalRequest, CommandExecution
from modconsole.models.audit_log import AuditLog
from modconsole.models.enums import ApprovalStatus, RiskLevel, Severity
from modconsole.models.security import SecurityEvent, SensitiveModeGrant
from modconsole.models.user import User
from modconsole.services.audit_service import AuditService
from modconsole.services.security_events import (
    APPROVAL_SPAM, CROSS_TENANT_ACCESS_ATTEMPT, HIGH_RISK_COMMAND_BURST, SecurityEventService,
)
from modconsole.services.security_settings import SecuritySettings, update_security_settings


def _service(clock):
    return SecurityEventService(clock, audit=AuditService(clock))


def _executions(db_session, community, user, clock, n):
    for _ in range(n):
        db_session.add(CommandExecution(
            community_id=community.id, command_id="ban.perm", risk_level=RiskLevel.HIGH,
            user_id=user.id, created_at=clock(),
        ))
    db_session.commit()


class TestHighRiskBurst:

    def test_below_threshold(self, db_session, community, make_user, clock):
        user = make_user(community)
        _executions(db_session, community, user, clock, 2)
        assert _service(clock).maybe_record_high_risk_command_burst(db_session, community.id, user.id) is None

    def test_one_event_per_window(self, db_session, community, make_user, clock):
        user = make_user(community)
        _executions(db_session, community, user, clock, 3)
        service = _service(clock)

        first = service.maybe_record_high_risk_command_burst(db_session, community.id, user.id)
        second = service.maybe_record_high_risk_command_burst(db_session, community.id, user.id)

        assert first is not None
        assert first.severity == Severity.HIGH
        assert second is None
        assert db_session.query(SecurityEvent).filter(
            SecurityEvent.event_type == HIGH_RISK_COMMAND_BURST
        ).count() == 1

    def test_large_burst_is_critical(self, db_session, community, make_user, clock):
        user = make_user(community)
        _executions(db_session, community, user, clock, 6)
        event = _service(clock).maybe_record_high_risk_command_burst(db_session, community.id, user.id)
        assert event.severity == Severity.CRITICAL

    def test_old_executions_fall_out_of_the_window(self, db_session, community, make_user, clock):
        user = make_user(community)
        _executions(db_session, community, user, clock, 3)
        clock.advance(minutes=11)
        assert _service(clock).maybe_record_high_risk_command_burst(db_session, community.id, user.id) is None


class TestApprovalSpam:

    def test_flood_of_requests(self, db_session, community, make_user, clock):
        user = make_user(community)
        for _ in range(5):
            db_session.add(ApprovalRequest(
                community_id=community.id, status=ApprovalStatus.PENDING, risk_level=RiskLevel.HIGH,
                requested_by_user_id=user.id, payload_json="{}", created_at=clock(),
            ))
        db_session.commit()

        event = _service(clock).maybe_record_approval_spam(db_session, community.id, user.id)
        assert event.event_type == APPROVAL_SPAM
        assert event.severity == Severity.MEDIUM


class TestAutoFreeze:

    def _enable(self, db_session, community, actor, clock, threshold=Severity.CRITICAL):
        update_security_settings(
            db_session, community.id, actor.id,
            SecuritySettings(auto_freeze_enabled=True, auto_freeze_threshold=threshold),
            audit=AuditService(clock),
        )
        db_session.commit()

    def test_critical_violation_freezes_the_user(self, db_session, community, make_user, clock):
        owner = make_user(community, role="OWNER")
        mod = make_user(community, role="MOD")
        self._enable(db_session, community, owner, clock)
        db_session.add(SensitiveModeGrant(
            session_token="s", user_id=mod.id, enabled_at=clock(), expires_at=clock() + timedelta(minutes=5),
        ))
        db_session.commit()

        _service(clock).create_event(
            db_session, Severity.CRITICAL, CROSS_TENANT_ACCESS_ATTEMPT,
            community_id=community.id, user_id=mod.id, metadata={"resource": "player"},
        )
        db_session.commit()

        assert db_session.get(User, mod.id).disabled_at == clock()
        assert db_session.query(SensitiveModeGrant).count() == 0
        frozen = db_session.query(AuditLog).filter(AuditLog.event_type == "user.disabled").one()
        assert '"source": "auto_freeze"' in frozen.metadata_json

    def test_owner_is_never_frozen(self, db_session, community, make_user, clock):
        owner = make_user(community, role="OWNER")
        self._enable(db_session, community, owner, clock)

        _service(clock).create_event(
            db_session, Severity.CRITICAL, CROSS_TENANT_ACCESS_ATTEMPT,
            community_id=community.id, user_id=owner.id,
        )
        db_session.commit()
        assert db_session.get(User, owner.id).disabled_at is None

    def test_below_threshold_does_nothing(self, db_session, community, make_user, clock):
        owner = make_user(community, role="OWNER")
        mod = make_user(community, role="MOD")
        self._enable(db_session, community, owner, clock)

        _service(clock).create_event(
            db_session, Severity.HIGH, CROSS_TENANT_ACCESS_ATTEMPT,
            community_id=community.id, user_id=mod.id,
        )
        db_session.commit()
        assert db_session.get(User, mod.id).disabled_at is None

    def test_disabled_policy_does_nothing(self, db_session, community, make_user, clock):
        mod = make_user(community, role="MOD")
        _service(clock).create_event(
            db_session, Severity.CRITICAL, CROSS_TENANT_ACCESS_ATTEMPT,
            community_id=community.id, user_id=mod.id,
        )
        db_session.commit()
        assert db_session.get(User, mod.id).disabled_at is None
