"""Approval API router: pending queue and decisions."""

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from modconsole.api.deps import get_actor
from modconsole.commands.engine import CommandEngine
from modconsole.core.permissions import Permission
from modconsole.core.security import Actor, Principal, authorize, get_current_principal
from modconsole.db.session import get_db
from modconsole.models.approval import ApprovalRequest
from modconsole.models.enums import ApprovalStatus
from modconsole.schemas.schemas import ApprovalDecisionOut, ApprovalDecisionRequest, ApprovalOut

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("")
async def list_approvals(
    status: Optional[ApprovalStatus] = Query(ApprovalStatus.PENDING),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Approval requests of the caller's community, newest first."""
    authorize(actor, Permission.APPROVALS_DECIDE)
    query = db.query(ApprovalRequest).filter(ApprovalRequest.community_id == actor.community_id)
    if status:
        query = query.filter(ApprovalRequest.status == status)
    total = query.count()
    rows = (
        query.order_by(ApprovalRequest.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "approvals": [
            ApprovalOut(
                id=a.id,
                status=a.status.value,
                risk_level=a.risk_level.value,
                requested_by_user_id=a.requested_by_user_id,
                payload=json.loads(a.payload_json),
                reason=a.reason,
                decided_by_user_id=a.decided_by_user_id,
                decided_at=a.decided_at,
                created_at=a.created_at,
            )
            for a in rows
        ],
        "total": total,
        "page": page,
    }


@router.post("/{approval_id}/decision", response_model=ApprovalDecisionOut)
async def decide_approval(
    approval_id: str,
    body: ApprovalDecisionRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    actor: Actor = Depends(get_actor),
):
    result = CommandEngine(db).decide_approval(
        approval_id,
        principal.user_id,
        body.decision,
        session_token=principal.session_token,
        reason=body.reason,
        ip=principal.ip,
        user_agent=principal.user_agent,
        community_id=actor.community_id,
        request_id=principal.request_id,
    )
    return ApprovalDecisionOut(
        approval_id=result.approval_id,
        status=result.status.value,
        message=result.message,
        redirect_url=result.redirect_url,
    )
