"""Communities, roles and memberships; resolves an Actor for a community."""

import json
import re
from typing import Optional

from sqlalchemy.orm import Session

from modconsole.core.exceptions import ForbiddenError, NotFoundError
from modconsole.core.permissions import SYSTEM_ROLES
from modconsole.core.security import Actor
from modconsole.models.community import Community, CommunityRole, CommunityMembership
from modconsole.models.user import User


class MembershipService:
    """Tenant membership and role resolution."""

    @staticmethod
    def ensure_system_roles(db: Session, community_id: str) -> dict[str, CommunityRole]:
        """Create any missing built-in role for a community; idempotent."""
        existing = {
            role.name: role
            for role in db.query(CommunityRole).filter(CommunityRole.community_id == community_id)
        }
        for name, (priority, perms) in SYSTEM_ROLES.items():
            role = existing.get(name)
            if role is None:
                role = CommunityRole(community_id=community_id, name=name)
                db.add(role)
                existing[name] = role
            role.priority = priority
            role.permissions_json = json.dumps(list(perms))
            role.is_system = True
        db.flush()
        return existing

    @staticmethod
    def create_community(db: Session, name: str, slug: Optional[str] = None) -> Community:
        slug = slug or re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
        community = Community(name=name, slug=slug)
        db.add(community)
        db.flush()
        MembershipService.ensure_system_roles(db, community.id)
        return community

    @staticmethod
    def get_membership(db: Session, community_id: str, user_id: str) -> Optional[CommunityMembership]:
        return (
            db.query(CommunityMembership)
            .filter(
                CommunityMembership.community_id == community_id,
                CommunityMembership.user_id == user_id,
            )
            .first()
        )

    @staticmethod
    def is_member(db: Session, community_id: str, user_id: str) -> bool:
        return MembershipService.get_membership(db, community_id, user_id) is not None

    @staticmethod
    def upsert_membership(db: Session, community_id: str, user_id: str, role_id: str) -> CommunityMembership:
        role = db.get(CommunityRole, role_id)
        if role is None or role.community_id != community_id:
            raise NotFoundError("Role not found.")
        membership = MembershipService.get_membership(db, community_id, user_id)
        if membership is None:
            membership = CommunityMembership(community_id=community_id, user_id=user_id, role_id=role_id)
            db.add(membership)
        else:
            membership.role_id = role_id
        db.flush()
        return membership

    @staticmethod
    def role_priority(db: Session, community_id: str, user_id: str) -> int:
        membership = MembershipService.get_membership(db, community_id, user_id)
        return membership.role.priority if membership else 0

    @staticmethod
    def load_actor(db: Session, user_id: str, community_id: str) -> Actor:
        """Resolve identity and permissions fresh from user, membership and role rows."""
        user = db.get(User, user_id, populate_existing=True)
        if user is None:
            raise NotFoundError("User not found.")
        membership = MembershipService.get_membership(db, community_id, user_id)
        if membership is None:
            raise ForbiddenError("Not a member of this community.")
        role = membership.role
        return Actor(
            id=user.id,
            community_id=community_id,
            disabled_at=user.disabled_at,
            role_name=role.name,
            role_priority=role.priority,
            permissions=frozenset(json.loads(role.permissions_json or "[]")),
        )


membership_service = MembershipService()
