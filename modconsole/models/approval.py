"""Approval requests and command execution records."""

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum, Index

from modconsole.core.clock import utcnow
from modconsole.db.base import Base, new_id
from modconsole.models.enums import ApprovalStatus, RiskLevel


class ApprovalRequest(Base):
    """A two-person decision over a queued command (or a non-command payload).

    ``payload_json`` holds ``{"commandId": ..., "input": {...}}`` for commands,
    or ``{"kind": "invite.join", ...}`` for membership approvals. The row is
    decided exactly once and never re-opened.
    """
    __tablename__ = "approval_requests"
    __table_args__ = (
        Index("ix_approval_requester_status", "community_id", "requested_by_user_id", "status", "created_at"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False, index=True)
    risk_level = Column(Enum(RiskLevel), nullable=False)
    requested_by_user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    payload_json = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    decided_by_user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    decided_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class CommandExecution(Base):
    """Append-only fact that a command ran. Used for cooldown and burst lookups."""
    __tablename__ = "command_executions"
    __table_args__ = (
        Index("ix_command_exec_user_command", "community_id", "user_id", "command_id", "created_at"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    command_id = Column(String(100), nullable=False)
    risk_level = Column(Enum(RiskLevel), nullable=False)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    approval_request_id = Column(String(32), ForeignKey("approval_requests.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
