"""Auth API router: login and sensitive mode."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from modconsole.api.deps import get_actor
from modconsole.core.middleware import request_context
from modconsole.core.rate_limiter import limiter
from modconsole.core.security import Actor, Principal, get_current_principal
from modconsole.db.session import get_db
from modconsole.schemas.schemas import (
    LoginRequest, MessageResponse, SensitiveModeOut, SensitiveModeRequest, TokenResponse,
)
from modconsole.services.auth_service import auth_service
from modconsole.services.security_settings import get_security_settings
from modconsole.services.sensitive_mode import sensitive_mode_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
@limiter.limit("30/minute")
async def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Authenticate and return a JWT access token."""
    context = request_context(request)
    return auth_service.authenticate(
        db,
        body.email,
        body.password,
        ip=context.ip,
        user_agent=context.user_agent,
        community_id=body.community_id,
    )


@router.get("/sensitive-mode", response_model=SensitiveModeOut)
async def sensitive_mode_status(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    status = sensitive_mode_service.get_status(db, principal.user_id, principal.session_token)
    db.commit()
    return SensitiveModeOut(enabled=status.enabled, expires_at=status.expires_at)


@router.post("/sensitive-mode", response_model=SensitiveModeOut)
async def enable_sensitive_mode(
    body: SensitiveModeRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    actor: Actor = Depends(get_actor),
):
    """Re-confirm the password to unlock high-risk operations for a while."""
    policy = get_security_settings(db, actor.community_id)
    status = sensitive_mode_service.enable(
        db,
        principal.user_id,
        principal.session_token,
        body.password,
        policy.sensitive_mode_ttl_minutes,
        community_id=actor.community_id,
        ip=principal.ip,
        user_agent=principal.user_agent,
    )
    db.commit()
    return SensitiveModeOut(enabled=status.enabled, expires_at=status.expires_at)


@router.delete("/sensitive-mode", response_model=MessageResponse)
async def disable_sensitive_mode(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    actor: Actor = Depends(get_actor),
):
    sensitive_mode_service.disable(
        db,
        principal.user_id,
        principal.session_token,
        community_id=actor.community_id,
        ip=principal.ip,
        user_agent=principal.user_agent,
    )
    db.commit()
    return MessageResponse(message="Sensitive mode disabled")
