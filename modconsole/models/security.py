"""Security telemetry: events, sensitive-mode grants and login attempts."""

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Enum, Index

from modconsole.core.clock import utcnow
from modconsole.db.base import Base, new_id
from modconsole.models.enums import Severity


class SecurityEvent(Base):
    """A derived or direct security signal (burst, spam, tenant violation...)."""
    __tablename__ = "security_events"
    __table_args__ = (
        Index("ix_security_event_lookup", "event_type", "community_id", "user_id", "created_at"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id"), nullable=True, index=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    severity = Column(Enum(Severity), nullable=False)
    event_type = Column(String(100), nullable=False)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class SensitiveModeGrant(Base):
    """Short-lived elevated trust bound to one login session."""
    __tablename__ = "sensitive_mode_grants"

    session_token = Column(String(64), primary_key=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    enabled_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)


class LoginAttempt(Base):
    __tablename__ = "login_attempts"
    __table_args__ = (Index("ix_login_attempt_email", "email", "success", "created_at"),)

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    success = Column(Boolean, nullable=False)
    ip = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
