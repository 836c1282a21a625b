"""Per-community command kill switches."""

from typing import Optional

from sqlalchemy.orm import Session

from modconsole.commands.registry import COMMANDS, get_command_definition
from modconsole.core.clock import utcnow
from modconsole.core.permissions import Permission
from modconsole.core.security import Actor, authorize
from modconsole.models.community import CommandToggle
from modconsole.models.enums import AuditEvent
from modconsole.services.audit_service import AuditService, audit_service, record


class CommandToggleService:
    """Operators can disable individual commands; no row means enabled."""

    @staticmethod
    def is_enabled(db: Session, community_id: str, command_id: str) -> bool:
        toggle = (
            db.query(CommandToggle.enabled)
            .filter(
                CommandToggle.community_id == community_id,
                CommandToggle.command_id == command_id,
            )
            .first()
        )
        return True if toggle is None else bool(toggle.enabled)

    @staticmethod
    def set_enabled(
        db: Session,
        actor: Actor,
        command_id: str,
        enabled: bool,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        audit: Optional[AuditService] = None,
    ) -> CommandToggle:
        """Flip a command for the actor's community. Caller commits."""
        authorize(actor, Permission.COMMANDS_MANAGE)
        get_command_definition(command_id)
        toggle = (
            db.query(CommandToggle)
            .filter(
                CommandToggle.community_id == actor.community_id,
                CommandToggle.command_id == command_id,
            )
            .first()
        )
        if toggle is None:
            toggle = CommandToggle(community_id=actor.community_id, command_id=command_id)
            db.add(toggle)
        toggle.enabled = enabled
        toggle.updated_by_user_id = actor.id
        toggle.updated_at = utcnow()
        db.flush()

        (audit or audit_service).append_strict(db, record(
            AuditEvent.COMMAND_TOGGLED,
            community_id=actor.community_id,
            user_id=actor.id,
            ip=ip,
            user_agent=user_agent,
            commandId=command_id,
            enabled=enabled,
        ))
        return toggle

    @staticmethod
    def list_states(db: Session, community_id: str) -> list[dict]:
        """Catalog metadata plus the enabled flag, in catalog order."""
        toggles = {
            t.command_id: t.enabled
            for t in db.query(CommandToggle).filter(CommandToggle.community_id == community_id)
        }
        return [
            {
                "id": cmd.id,
                "name": cmd.name,
                "description": cmd.description,
                "requiredPermission": cmd.required_permission,
                "riskLevel": cmd.risk_level.value,
                "enabled": toggles.get(cmd.id, True),
                "fields": [
                    {
                        "name": f.name,
                        "label": f.label,
                        "type": f.type,
                        "required": f.required,
                        "min": f.min,
                        "max": f.max,
                        "options": [{"value": v, "label": label} for v, label in f.options],
                    }
                    for f in cmd.fields
                ],
            }
            for cmd in COMMANDS
        ]


command_toggle_service = CommandToggleService()
