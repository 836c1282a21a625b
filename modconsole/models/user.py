"""User model."""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from modconsole.core.clock import utcnow
from modconsole.db.base import Base, new_id


class User(Base):
    """Staff account. Community access comes from memberships."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=False)
    disabled_at = Column(DateTime, nullable=True)
    failed_login_count = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    memberships = relationship(
        "CommunityMembership",
        back_populates="user",
        lazy="selectin",
        foreign_keys="[CommunityMembership.user_id]",
    )
