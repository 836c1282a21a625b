"""Admin API router: audit trail, security events and security policy."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from modconsole.api.deps import get_actor
from modconsole.core.permissions import Permission
from modconsole.core.security import Actor, Principal, authorize, get_current_principal
from modconsole.db.session import get_db
from modconsole.models.enums import Severity
from modconsole.schemas.schemas import AuditLogOut, ChainVerificationOut, SecurityEventOut
from modconsole.services.audit_service import audit_service
from modconsole.services.security_events import security_event_service
from modconsole.services.security_settings import (
    SecuritySettings, get_security_settings, update_security_settings,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/audit")
async def get_audit_logs(
    event_type: Optional[str] = Query(None, max_length=100),
    user_id: Optional[str] = Query(None, max_length=32),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Query the community's audit logs."""
    authorize(actor, Permission.AUDIT_READ)
    result = audit_service.query_logs(
        db, actor.community_id, event_type, user_id, page, page_size,
    )
    return {
        "logs": [AuditLogOut.model_validate(log) for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
    }


@router.get("/audit/verify", response_model=ChainVerificationOut)
async def verify_audit_chain(
    limit: int = Query(1000, ge=1, le=100000),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Re-hash the newest ``limit`` entries of the chain."""
    authorize(actor, Permission.AUDIT_READ)
    result = audit_service.verify_recent(db, limit)
    return ChainVerificationOut(
        ok=result.ok,
        entries_checked=result.entries_checked,
        first_broken_index=result.first_broken_index,
        reason=result.reason,
        partial=result.partial,
    )


@router.get("/security-events")
async def list_security_events(
    severity: Optional[Severity] = Query(None),
    event_type: Optional[str] = Query(None, max_length=64),
    user_id: Optional[str] = Query(None, max_length=32),
    page: int = Query(1, ge=1),
    page_size: int = Query(80, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    authorize(actor, Permission.SECURITY_READ)
    result = security_event_service.list_events(
        db, actor.community_id, severity, event_type, user_id, page, page_size,
    )
    return {
        "events": [SecurityEventOut.model_validate(e) for e in result["events"]],
        "total": result["total"],
        "page": result["page"],
    }


@router.get("/security-settings")
async def read_security_settings(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    authorize(actor, Permission.SECURITY_READ)
    return get_security_settings(db, actor.community_id).model_dump(by_alias=True, mode="json")


@router.put("/security-settings")
async def write_security_settings(
    body: SecuritySettings,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    actor: Actor = Depends(get_actor),
):
    """Replace the community's security policy."""
    authorize(actor, Permission.SETTINGS_EDIT)
    saved = update_security_settings(
        db, actor.community_id, actor.id, body,
        ip=principal.ip, user_agent=principal.user_agent,
    )
    db.commit()
    return saved.model_dump(by_alias=True, mode="json")
