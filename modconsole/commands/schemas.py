"""Input models for catalog commands.

Inputs arrive with camelCase keys (``playerId``) from forms and API
clients; snake_case names are accepted too. Multi-value fields take either
a list or a newline/comma delimited string, and numeric fields accept
numeric strings.
"""

import re
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")
MAX_MINUTES = 60 * 24 * 30

# Errors of this type carry a complete sentence; others get a field prefix.
MESSAGE_ERROR = "console_message"


def coerce_string_list(raw: Any) -> list:
    if isinstance(raw, (list, tuple)):
        return [str(v).strip() for v in raw if str(v).strip()]
    if isinstance(raw, str):
        return [v.strip() for v in re.split(r"\r?\n|,", raw) if v.strip()]
    return []


def blank_to_none(raw: Any) -> Any:
    if isinstance(raw, str) and not raw.strip():
        return None
    return raw


def check_id(value: str) -> str:
    if not ID_PATTERN.fullmatch(value):
        raise PydanticCustomError("invalid_id", "Invalid id.")
    return value


def min_length(n: int, message: Optional[str] = None) -> AfterValidator:
    def check(value: str) -> str:
        if len(value) < n:
            if message:
                raise PydanticCustomError(MESSAGE_ERROR, message)
            raise PydanticCustomError(
                "too_short", "Must be at least {min_length} characters.", {"min_length": n}
            )
        return value
    return AfterValidator(check)


def non_empty(message: str) -> AfterValidator:
    def check(value: list) -> list:
        if not value:
            raise PydanticCustomError(MESSAGE_ERROR, message)
        return value
    return AfterValidator(check)


Trimmed = Annotated[str, StringConstraints(strip_whitespace=True)]
EntityId = Annotated[Trimmed, AfterValidator(check_id)]
OptionalEntityId = Annotated[Optional[EntityId], BeforeValidator(blank_to_none)]
Reason = Annotated[Trimmed, min_length(8, "Reason must be at least 8 characters.")]
ShortText = Annotated[Trimmed, min_length(3)]
OptionalShortText = Annotated[Optional[ShortText], BeforeValidator(blank_to_none)]
OptionalText = Annotated[Optional[Trimmed], BeforeValidator(blank_to_none)]
Minutes = Annotated[int, Field(ge=1, le=MAX_MINUTES)]
StringList = Annotated[list[str], BeforeValidator(coerce_string_list)]


class CommandInput(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class PlayerReasonInput(CommandInput):
    player_id: EntityId
    reason: Reason


class TempBanInput(CommandInput):
    player_id: EntityId
    duration_minutes: Minutes
    reason: Reason
    evidence_urls: StringList = []


class PermBanInput(CommandInput):
    player_id: EntityId
    reason: Reason
    evidence_urls: StringList = []


class ExtendBanInput(CommandInput):
    action_id: EntityId
    extra_minutes: Minutes
    reason: ShortText


class RemoveBanInput(CommandInput):
    action_id: EntityId
    reason: ShortText


class FlagPlayerInput(CommandInput):
    player_id: EntityId
    status: Literal["ACTIVE", "WATCHED"]
    reason: OptionalText = None


class AddNoteInput(CommandInput):
    player_id: EntityId
    note: ShortText


class CaseFromReportInput(CommandInput):
    report_id: EntityId
    title: OptionalShortText = None
    assign_to_user_id: OptionalEntityId = None


class AssignCaseInput(CommandInput):
    case_id: EntityId
    user_id: EntityId


class BulkResolveInput(CommandInput):
    report_ids: Annotated[
        list[EntityId],
        BeforeValidator(coerce_string_list),
        non_empty("Provide at least one report id."),
    ]
    resolution: Literal["RESOLVED", "REJECTED"]
    note: OptionalText = None


class ExportCaseInput(CommandInput):
    case_id: EntityId
