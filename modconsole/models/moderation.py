"""Players, moderation actions, cases and reports."""

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Enum, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from modconsole.core.clock import utcnow
from modconsole.db.base import Base, new_id
from modconsole.models.enums import ActionType, PlayerStatus, CaseStatus, ReportStatus


class Player(Base):
    """An in-game player known to a community."""
    __tablename__ = "players"

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    status = Column(Enum(PlayerStatus), default=PlayerStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ModerationAction(Base):
    """A warning, kick, ban or note recorded against a player."""
    __tablename__ = "moderation_actions"

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(String(32), ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(ActionType), nullable=False)
    moderator_user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    reason = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    evidence_urls_json = Column(Text, nullable=False, default="[]")
    revoked_at = Column(DateTime, nullable=True)
    revoked_by_user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    revoked_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Case(Base):
    """An investigation grouping reports and players."""
    __tablename__ = "cases"

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(CaseStatus), default=CaseStatus.OPEN, nullable=False)
    assigned_to_user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    players = relationship("CasePlayer", back_populates="case", lazy="selectin")


class CasePlayer(Base):
    __tablename__ = "case_players"
    __table_args__ = (UniqueConstraint("case_id", "player_id", name="uq_case_player"),)

    id = Column(String(32), primary_key=True, default=new_id)
    case_id = Column(String(32), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(String(32), ForeignKey("players.id", ondelete="CASCADE"), nullable=False)

    case = relationship("Case", back_populates="players")


class Report(Base):
    """A player report submitted by the community."""
    __tablename__ = "reports"

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    summary = Column(Text, nullable=False)
    reporter_name = Column(String(255), nullable=True)
    reporter_contact = Column(String(255), nullable=True)
    accused_player_id = Column(String(32), ForeignKey("players.id"), nullable=True)
    case_id = Column(String(32), ForeignKey("cases.id"), nullable=True)
    status = Column(Enum(ReportStatus), default=ReportStatus.OPEN, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
