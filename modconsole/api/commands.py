"""Command API router: catalog, run and kill switches."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from modconsole.api.deps import get_actor
from modconsole.commands.engine import CommandEngine
from modconsole.core.permissions import Permission
from modconsole.core.security import Actor, Principal, authorize, get_current_principal
from modconsole.db.session import get_db
from modconsole.schemas.schemas import CommandRunOut, CommandRunRequest, CommandToggleRequest, MessageResponse
from modconsole.services.command_toggles import command_toggle_service

router = APIRouter(prefix="/commands", tags=["commands"])


@router.get("/meta")
async def list_commands(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Command catalog with per-community enabled state."""
    commands = command_toggle_service.list_states(db, actor.community_id)
    for command in commands:
        command["allowed"] = command["requiredPermission"] in actor.permissions
    return {"commands": commands}


@router.post("/{command_id}/run", response_model=CommandRunOut)
async def run_command(
    command_id: str,
    body: CommandRunRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    actor: Actor = Depends(get_actor),
):
    result = CommandEngine(db).run_command(
        actor_user_id=principal.user_id,
        community_id=actor.community_id,
        command_id=command_id,
        raw_input=body.input,
        session_token=principal.session_token,
        ip=principal.ip,
        user_agent=principal.user_agent,
        request_id=principal.request_id,
    )
    return CommandRunOut(
        status=result.status,
        message=result.message,
        approval_id=result.approval_id,
        redirect_url=result.redirect_url,
    )


@router.put("/{command_id}/toggle", response_model=MessageResponse)
async def toggle_command(
    command_id: str,
    body: CommandToggleRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    actor: Actor = Depends(get_actor),
):
    """Enable or disable a command for the caller's community."""
    authorize(actor, Permission.COMMANDS_MANAGE)
    command_toggle_service.set_enabled(
        db, actor, command_id, body.enabled,
        ip=principal.ip, user_agent=principal.user_agent,
    )
    db.commit()
    return MessageResponse(message="Command enabled" if body.enabled else "Command disabled")
