"""Models package. Import all models so metadata.create_all can discover them."""

from modconsole.models.user import User
from modconsole.models.community import (
    Community, CommunityRole, CommunityMembership, CommunitySetting, CommandToggle,
)
from modconsole.models.moderation import Player, ModerationAction, Case, CasePlayer, Report
from modconsole.models.approval import ApprovalRequest, CommandExecution
from modconsole.models.audit_log import AuditLog, AuditChainLock
from modconsole.models.security import SecurityEvent, SensitiveModeGrant, LoginAttempt

__all__ = [
    "User", "Community", "CommunityRole", "CommunityMembership",
    "CommunitySetting", "CommandToggle",
    "Player", "ModerationAction", "Case", "CasePlayer", "Report",
    "ApprovalRequest", "CommandExecution",
    "AuditLog", "AuditChainLock",
    "SecurityEvent", "SensitiveModeGrant", "LoginAttempt",
]
