"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import modconsole.models  # noqa: F401
from modconsole.db.base import Base
from modconsole.db.session import configure_sqlite
from modconsole.models.enums import ActionType
from modconsole.models.moderation import Case, ModerationAction, Player, Report
from modconsole.models.security import SensitiveModeGrant
from modconsole.models.user import User
from modconsole.services.audit_service import audit_error_throttle
from modconsole.services.membership_service import membership_service


class FrozenClock:
    """Manually advanced clock; starts at a fixed naive-UTC instant."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture(autouse=True)
def reset_audit_error_throttle():
    audit_error_throttle.reset()
    yield


@pytest.fixture
def engine():
    """Fresh in-memory database for each test."""
    engine = configure_sqlite(create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def community(db_session):
    community = membership_service.create_community(db_session, "Blocky Realm")
    db_session.commit()
    return community


@pytest.fixture
def other_community(db_session):
    community = membership_service.create_community(db_session, "Other Realm")
    db_session.commit()
    return community


@pytest.fixture
def make_user(db_session):
    """Create a user, optionally a member of ``community`` with a built-in role."""
    counter = {"n": 0}

    def _make(community=None, role="MOD", hashed_password=None, email=None):
        counter["n"] += 1
        user = User(
            email=email or f"staff{counter['n']}@example.com",
            full_name=f"Staff {counter['n']}",
            hashed_password=hashed_password,
        )
        db_session.add(user)
        db_session.flush()
        if community is not None:
            roles = membership_service.ensure_system_roles(db_session, community.id)
            membership_service.upsert_membership(db_session, community.id, user.id, roles[role].id)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_player(db_session):
    def _make(community, name="griefer42"):
        player = Player(community_id=community.id, display_name=name)
        db_session.add(player)
        db_session.commit()
        return player

    return _make


@pytest.fixture
def make_report(db_session):
    def _make(community, summary="Destroyed spawn builds", accused=None, **kwargs):
        report = Report(
            community_id=community.id,
            summary=summary,
            accused_player_id=accused.id if accused else None,
            **kwargs,
        )
        db_session.add(report)
        db_session.commit()
        return report

    return _make


@pytest.fixture
def make_case(db_session):
    def _make(community, title="Spawn griefing"):
        case = Case(community_id=community.id, title=title)
        db_session.add(case)
        db_session.commit()
        return case

    return _make


@pytest.fixture
def make_action(db_session):
    def _make(community, player, action_type=ActionType.TEMP_BAN, duration_minutes=60):
        action = ModerationAction(
            community_id=community.id,
            player_id=player.id,
            type=action_type,
            reason="Repeated griefing",
            duration_minutes=duration_minutes if action_type == ActionType.TEMP_BAN else None,
        )
        db_session.add(action)
        db_session.commit()
        return action

    return _make


@pytest.fixture
def grant_sensitive_mode(db_session, clock):
    """Open a sensitive-mode grant for ``user`` on ``session_token``."""

    def _grant(user, session_token="session-1", minutes=10):
        db_session.add(SensitiveModeGrant(
            session_token=session_token,
            user_id=user.id,
            enabled_at=clock(),
            expires_at=clock() + timedelta(minutes=minutes),
        ))
        db_session.commit()
        return session_token

    return _grant
