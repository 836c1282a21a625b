"""Permission strings and the built-in community role table."""


class Permission:
    USERS_READ = "users:read"
    USERS_INVITE = "users:invite"
    USERS_EDIT_ROLE = "users:edit_role"
    USERS_DISABLE = "users:disable"

    PLAYERS_READ = "players:read"
    PLAYERS_EDIT = "players:edit"
    PLAYERS_FLAG = "players:flag"

    ACTIONS_CREATE = "actions:create"
    ACTIONS_REVOKE = "actions:revoke"

    BANS_CREATE = "bans:create"
    BANS_EXTEND = "bans:extend"
    BANS_REMOVE = "bans:remove"

    CASES_READ = "cases:read"
    CASES_CREATE = "cases:create"
    CASES_ASSIGN = "cases:assign"
    CASES_COMMENT = "cases:comment"

    REPORTS_READ = "reports:read"
    REPORTS_TRIAGE = "reports:triage"
    REPORTS_RESOLVE = "reports:resolve"

    AUDIT_READ = "audit:read"
    SECURITY_READ = "security:read"
    SETTINGS_EDIT = "settings:edit"

    COMMANDS_RUN = "commands:run"
    COMMANDS_MANAGE = "commands:manage"
    APPROVALS_DECIDE = "approvals:decide"


VIEWER_PERMS = (
    Permission.PLAYERS_READ,
    Permission.CASES_READ,
    Permission.REPORTS_READ,
)

TRIAL_MOD_PERMS = VIEWER_PERMS + (
    Permission.PLAYERS_EDIT,
    Permission.ACTIONS_CREATE,
    Permission.BANS_CREATE,
    Permission.REPORTS_TRIAGE,
    Permission.CASES_COMMENT,
    Permission.COMMANDS_RUN,
)

MOD_PERMS = TRIAL_MOD_PERMS + (
    Permission.PLAYERS_FLAG,
    Permission.CASES_CREATE,
    Permission.CASES_ASSIGN,
    Permission.REPORTS_RESOLVE,
    Permission.BANS_EXTEND,
)

ADMIN_PERMS = MOD_PERMS + (
    Permission.USERS_READ,
    Permission.USERS_INVITE,
    Permission.USERS_EDIT_ROLE,
    Permission.ACTIONS_REVOKE,
    Permission.BANS_REMOVE,
    Permission.AUDIT_READ,
    Permission.SECURITY_READ,
    Permission.SETTINGS_EDIT,
    Permission.COMMANDS_MANAGE,
    Permission.APPROVALS_DECIDE,
)

OWNER_PERMS = ADMIN_PERMS + (Permission.USERS_DISABLE,)

# name -> (priority, permissions); the highest priority is the community owner
SYSTEM_ROLES = {
    "VIEWER": (10, VIEWER_PERMS),
    "TRIAL_MOD": (20, TRIAL_MOD_PERMS),
    "MOD": (30, MOD_PERMS),
    "ADMIN": (40, ADMIN_PERMS),
    "OWNER": (50, OWNER_PERMS),
}

OWNER_PRIORITY = SYSTEM_ROLES["OWNER"][0]
