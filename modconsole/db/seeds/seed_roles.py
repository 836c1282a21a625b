"""Seed the built-in roles into every community."""

from sqlalchemy.orm import Session

from modconsole.models.community import Community
from modconsole.services.membership_service import membership_service


def seed_roles(db: Session) -> int:
    """Create or refresh VIEWER..OWNER for each community. Returns communities touched."""
    communities = db.query(Community).all()
    for community in communities:
        membership_service.ensure_system_roles(db, community.id)
    db.commit()
    print(f"  Roles synced for {len(communities)} communities")
    return len(communities)
