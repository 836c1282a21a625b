"""Per-community security policy, read fresh on every call."""

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from modconsole.core.clock import utcnow
from modconsole.core.config import settings
from modconsole.models.community import CommunitySetting
from modconsole.models.enums import AuditEvent, Severity
from modconsole.services.audit_service import AuditService, audit_service, record

SECURITY_SETTINGS_KEY = "security"


class SecuritySettings(BaseModel):
    """Security policy. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    two_person_rule: bool = Field(default_factory=lambda: settings.SECURITY_TWO_PERSON_DEFAULT)
    require_sensitive_mode_for_high_risk: bool = Field(
        default_factory=lambda: settings.SECURITY_REQUIRE_SENSITIVE_MODE_DEFAULT
    )
    sensitive_mode_ttl_minutes: int = Field(
        default_factory=lambda: settings.SENSITIVE_MODE_TTL_MINUTES, ge=1, le=240
    )
    high_risk_command_cooldown_seconds: int = Field(
        default_factory=lambda: settings.SECURITY_HIGH_RISK_COOLDOWN_SECONDS, ge=0, le=86400
    )
    auto_freeze_enabled: bool = False
    auto_freeze_threshold: Severity = Severity.CRITICAL
    lockout_max_attempts: int = Field(5, ge=1, le=100)
    lockout_window_minutes: int = Field(15, ge=1, le=1440)
    lockout_duration_minutes: int = Field(15, ge=1, le=1440)


def parse_security_settings(raw: Any) -> SecuritySettings:
    """Validate stored policy; any invalid field falls back to its default."""
    if not isinstance(raw, dict):
        return SecuritySettings()
    try:
        return SecuritySettings.model_validate(raw)
    except ValidationError as exc:
        bad = {err["loc"][0] for err in exc.errors() if err["loc"]}
    return SecuritySettings.model_validate({k: v for k, v in raw.items() if k not in bad})


def get_security_settings(db: Session, community_id: str) -> SecuritySettings:
    row = (
        db.query(CommunitySetting)
        .filter(
            CommunitySetting.community_id == community_id,
            CommunitySetting.key == SECURITY_SETTINGS_KEY,
        )
        .first()
    )
    if row is None:
        return SecuritySettings()
    try:
        raw = json.loads(row.value_json)
    except ValueError:
        raw = None
    return parse_security_settings(raw)


def update_security_settings(
    db: Session,
    community_id: str,
    actor_user_id: str,
    payload: SecuritySettings,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    audit: Optional[AuditService] = None,
) -> SecuritySettings:
    """Upsert the policy and audit the change. Caller commits."""
    audit = audit or audit_service
    value = payload.model_dump(by_alias=True, mode="json")
    row = (
        db.query(CommunitySetting)
        .filter(
            CommunitySetting.community_id == community_id,
            CommunitySetting.key == SECURITY_SETTINGS_KEY,
        )
        .first()
    )
    if row is None:
        row = CommunitySetting(community_id=community_id, key=SECURITY_SETTINGS_KEY)
        db.add(row)
    row.value_json = json.dumps(value)
    row.updated_at = utcnow()
    db.flush()

    audit.append_strict(db, record(
        AuditEvent.SETTINGS_UPDATED,
        community_id=community_id,
        user_id=actor_user_id,
        ip=ip,
        user_agent=user_agent,
        key=SECURITY_SETTINGS_KEY,
        value=value,
    ))
    return payload
