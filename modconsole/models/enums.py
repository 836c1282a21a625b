"""Enumerations shared by models, commands and services."""

import enum


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Severity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class ActionType(str, enum.Enum):
    WARNING = "WARNING"
    KICK = "KICK"
    TEMP_BAN = "TEMP_BAN"
    PERM_BAN = "PERM_BAN"
    NOTE = "NOTE"


class PlayerStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    WATCHED = "WATCHED"
    BANNED = "BANNED"


class CaseStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    CLOSED = "CLOSED"


class ReportStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class AuditEvent(str, enum.Enum):
    """Event types written to the audit chain."""

    LOGIN_SUCCESS = "login.success"
    LOGIN_FAILED = "login.failed"
    USER_DISABLED = "user.disabled"
    MEMBERSHIP_CREATED = "membership.created"
    SENSITIVE_MODE_ENABLED = "sensitive_mode.enabled"
    SENSITIVE_MODE_DISABLED = "sensitive_mode.disabled"
    SETTINGS_UPDATED = "settings.updated"
    COMMAND_TOGGLED = "command.toggled"
    COMMAND_EXECUTED = "command.executed"
    APPROVAL_REQUESTED = "approval.requested"
    APPROVAL_DECIDED = "approval.decided"
    ACTION_CREATED = "action.created"
    ACTION_UPDATED = "action.updated"
    ACTION_REVOKED = "action.revoked"
    PLAYER_UPDATED = "player.updated"
    CASE_CREATED = "case.created"
    CASE_UPDATED = "case.updated"
    CASE_EXPORTED = "case.exported"
    REPORT_STATUS_UPDATED = "report.status_updated"
    TENANT_VIOLATION = "tenant.violation"
