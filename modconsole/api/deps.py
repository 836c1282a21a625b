"""Shared router dependencies."""

from fastapi import Depends
from sqlalchemy.orm import Session

from modconsole.core.security import Actor, Principal, get_community_id, get_current_principal
from modconsole.db.session import db_breaker, get_db
from modconsole.services.membership_service import membership_service


def get_actor(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    community_id: str = Depends(get_community_id),
) -> Actor:
    """The caller resolved against the community named in X-Community-Id."""
    return db_breaker.call(membership_service.load_actor, db, principal.user_id, community_id)
