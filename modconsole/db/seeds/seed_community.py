"""Seed a demo community with an owner, a second approver and a few players."""

from sqlalchemy.orm import Session

from modconsole.models.community import Community
from modconsole.models.moderation import Player, Report
from modconsole.models.user import User
from modconsole.services.auth_service import AuthService
from modconsole.services.membership_service import membership_service


def _ensure_user(db: Session, email: str, password: str, full_name: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = AuthService.create_user(db, email, password, full_name)
        print(f"  Created user: {email}")
    return user


def seed_community(
    db: Session,
    name: str = "Demo Server",
    owner_email: str = "owner@example.com",
    admin_email: str = "admin@example.com",
    password: str = "change-me-now",
) -> Community:
    """Idempotent: an existing community with the same slug is reused."""
    slug = name.lower().replace(" ", "-")
    community = db.query(Community).filter(Community.slug == slug).first()
    if community is None:
        community = membership_service.create_community(db, name, slug)
        print(f"  Created community: {name}")
    roles = membership_service.ensure_system_roles(db, community.id)

    owner = _ensure_user(db, owner_email, password, "Community Owner")
    admin = _ensure_user(db, admin_email, password, "Second Approver")
    membership_service.upsert_membership(db, community.id, owner.id, roles["OWNER"].id)
    membership_service.upsert_membership(db, community.id, admin.id, roles["ADMIN"].id)

    if db.query(Player).filter(Player.community_id == community.id).count() == 0:
        players = [Player(community_id=community.id, display_name=n) for n in ("griefer42", "speedy", "quiet_one")]
        db.add_all(players)
        db.flush()
        db.add(Report(
            community_id=community.id,
            summary="Destroyed spawn builds and spammed chat",
            reporter_name="speedy",
            accused_player_id=players[0].id,
        ))
        print("  Added sample players and a report")

    db.commit()
    return community
