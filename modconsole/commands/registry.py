"""Command catalog: immutable definitions of every executable operation."""

from dataclasses import dataclass, field
from typing import Any, Optional, Type

from pydantic import ValidationError

from modconsole.commands.schemas import (
    MAX_MINUTES, MESSAGE_ERROR, CommandInput,
    PlayerReasonInput, TempBanInput, PermBanInput, ExtendBanInput, RemoveBanInput,
    FlagPlayerInput, AddNoteInput, CaseFromReportInput, AssignCaseInput,
    BulkResolveInput, ExportCaseInput,
)
from modconsole.core.exceptions import UnknownCommandError, ValidationFailedError
from modconsole.core.permissions import Permission
from modconsole.models.enums import RiskLevel


@dataclass(frozen=True)
class CommandField:
    """Form metadata for one input field."""
    name: str
    label: str
    type: str = "text"  # text | textarea | number | select
    required: bool = False
    min: Optional[int] = None
    max: Optional[int] = None
    options: tuple = ()


@dataclass(frozen=True)
class CommandDefinition:
    id: str
    name: str
    description: str
    required_permission: str
    risk_level: RiskLevel
    schema: Type[CommandInput]
    fields: tuple = field(default_factory=tuple)

    def parse(self, raw: Any) -> CommandInput:
        """Validate raw input; raises ValidationFailedError with the first violated rule."""
        if isinstance(raw, CommandInput):
            raw = raw.model_dump(by_alias=True)
        if not isinstance(raw, dict):
            raise ValidationFailedError("Invalid input.")
        try:
            return self.schema.model_validate(raw)
        except ValidationError as exc:
            raise ValidationFailedError(first_error_message(exc)) from exc


def first_error_message(exc: ValidationError) -> str:
    err = exc.errors()[0]
    if err["type"] == MESSAGE_ERROR:
        return err["msg"]
    where = ".".join(str(part) for part in err["loc"])
    msg = err["msg"].rstrip(".") + "."
    return f"{where}: {msg}" if where else msg


def _options(*values: str) -> tuple:
    return tuple((v, v) for v in values)


PLAYER_ID = CommandField("playerId", "Player ID", required=True)
ACTION_ID = CommandField("actionId", "Action ID", required=True)
CASE_ID = CommandField("caseId", "Case ID", required=True)
REASON = CommandField("reason", "Reason", "textarea", required=True)
EVIDENCE = CommandField("evidenceUrls", "Evidence URLs (optional)", "textarea")


COMMANDS: tuple = (
    CommandDefinition(
        id="warning.create",
        name="Create Warning",
        description="Record a warning against a player.",
        required_permission=Permission.ACTIONS_CREATE,
        risk_level=RiskLevel.LOW,
        schema=PlayerReasonInput,
        fields=(PLAYER_ID, REASON),
    ),
    CommandDefinition(
        id="kick.record",
        name="Issue Kick Record",
        description="Record a kick event (does not kick in-game).",
        required_permission=Permission.ACTIONS_CREATE,
        risk_level=RiskLevel.LOW,
        schema=PlayerReasonInput,
        fields=(PLAYER_ID, REASON),
    ),
    CommandDefinition(
        id="ban.temp",
        name="Temp Ban",
        description="Record a temporary ban with duration and reason.",
        required_permission=Permission.BANS_CREATE,
        risk_level=RiskLevel.MEDIUM,
        schema=TempBanInput,
        fields=(
            PLAYER_ID,
            CommandField("durationMinutes", "Duration (minutes)", "number", True, 1, MAX_MINUTES),
            REASON,
            EVIDENCE,
        ),
    ),
    CommandDefinition(
        id="ban.perm",
        name="Permanent Ban",
        description="Record a permanent ban (approval required by default).",
        required_permission=Permission.BANS_CREATE,
        risk_level=RiskLevel.HIGH,
        schema=PermBanInput,
        fields=(PLAYER_ID, REASON, EVIDENCE),
    ),
    CommandDefinition(
        id="ban.extend",
        name="Extend Temp Ban",
        description="Extend an existing temp ban action.",
        required_permission=Permission.BANS_EXTEND,
        risk_level=RiskLevel.MEDIUM,
        schema=ExtendBanInput,
        fields=(
            ACTION_ID,
            CommandField("extraMinutes", "Extra minutes", "number", True, 1, MAX_MINUTES),
            REASON,
        ),
    ),
    CommandDefinition(
        id="ban.remove",
        name="Remove Ban",
        description="Revoke an existing ban action (approval required by default).",
        required_permission=Permission.BANS_REMOVE,
        risk_level=RiskLevel.HIGH,
        schema=RemoveBanInput,
        fields=(ACTION_ID, REASON),
    ),
    CommandDefinition(
        id="player.flag",
        name="Flag Player",
        description="Set a player's status to WATCHED or ACTIVE.",
        required_permission=Permission.PLAYERS_FLAG,
        risk_level=RiskLevel.LOW,
        schema=FlagPlayerInput,
        fields=(
            PLAYER_ID,
            CommandField("status", "Status", "select", required=True, options=_options("WATCHED", "ACTIVE")),
            CommandField("reason", "Reason (optional)", "textarea"),
        ),
    ),
    CommandDefinition(
        id="note.add",
        name="Add Note",
        description="Add a moderation note to a player record.",
        required_permission=Permission.ACTIONS_CREATE,
        risk_level=RiskLevel.LOW,
        schema=AddNoteInput,
        fields=(PLAYER_ID, CommandField("note", "Note", "textarea", required=True)),
    ),
    CommandDefinition(
        id="case.from_report",
        name="Open Case From Report",
        description="Create a case linked to a report.",
        required_permission=Permission.CASES_CREATE,
        risk_level=RiskLevel.MEDIUM,
        schema=CaseFromReportInput,
        fields=(
            CommandField("reportId", "Report ID", required=True),
            CommandField("title", "Title (optional)"),
            CommandField("assignToUserId", "Assign to user (optional)"),
        ),
    ),
    CommandDefinition(
        id="case.assign",
        name="Assign Case",
        description="Assign an existing case to a staff member.",
        required_permission=Permission.CASES_ASSIGN,
        risk_level=RiskLevel.LOW,
        schema=AssignCaseInput,
        fields=(CASE_ID, CommandField("userId", "User ID", required=True)),
    ),
    CommandDefinition(
        id="report.bulk_resolve",
        name="Bulk Resolve Reports",
        description="Resolve or reject multiple reports at once.",
        required_permission=Permission.REPORTS_RESOLVE,
        risk_level=RiskLevel.MEDIUM,
        schema=BulkResolveInput,
        fields=(
            CommandField("reportIds", "Report IDs", "textarea", required=True),
            CommandField("resolution", "Resolution", "select", required=True, options=_options("RESOLVED", "REJECTED")),
            CommandField("note", "Note (optional)", "textarea"),
        ),
    ),
    CommandDefinition(
        id="case.export_packet",
        name="Export Case Packet",
        description="Open a printable export for a case.",
        required_permission=Permission.CASES_READ,
        risk_level=RiskLevel.LOW,
        schema=ExportCaseInput,
        fields=(CASE_ID,),
    ),
)

_BY_ID = {cmd.id: cmd for cmd in COMMANDS}


def get_command_definition(command_id: str) -> CommandDefinition:
    try:
        return _BY_ID[command_id]
    except KeyError:
        raise UnknownCommandError(command_id) from None
