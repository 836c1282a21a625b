"""Community (tenant), roles, memberships and per-community configuration."""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from modconsole.core.clock import utcnow
from modconsole.db.base import Base, new_id


class Community(Base):
    """A tenant. Every moderated resource belongs to exactly one community."""
    __tablename__ = "communities"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    roles = relationship("CommunityRole", back_populates="community", lazy="selectin")


class CommunityRole(Base):
    """Role with a priority and a JSON list of permission strings."""
    __tablename__ = "community_roles"
    __table_args__ = (UniqueConstraint("community_id", "name", name="uq_community_role_name"),)

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    permissions_json = Column(Text, nullable=False, default="[]")
    is_system = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    community = relationship("Community", back_populates="roles")


class CommunityMembership(Base):
    """Association between users and communities with a community role."""
    __tablename__ = "community_memberships"
    __table_args__ = (UniqueConstraint("community_id", "user_id", name="uq_membership"),)

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(String(32), ForeignKey("community_roles.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    role = relationship("CommunityRole", lazy="joined")
    user = relationship("User", back_populates="memberships", foreign_keys=[user_id])


class CommunitySetting(Base):
    """Key/value JSON settings scoped to a community (e.g. ``security``)."""
    __tablename__ = "community_settings"
    __table_args__ = (UniqueConstraint("community_id", "key", name="uq_community_setting"),)

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    value_json = Column(Text, nullable=False, default="{}")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class CommandToggle(Base):
    """Kill switch for one command in one community. No row means enabled."""
    __tablename__ = "command_toggles"
    __table_args__ = (UniqueConstraint("community_id", "command_id", name="uq_command_toggle"),)

    id = Column(String(32), primary_key=True, default=new_id)
    community_id = Column(String(32), ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    command_id = Column(String(100), nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    updated_by_user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
