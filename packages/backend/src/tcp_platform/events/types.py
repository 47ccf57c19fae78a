"""Activity type constants.

Centralized so log writers and readers agree on spelling. Values are
what lands in activity_logs.action / agent_activity_logs.action.
"""

# ─── User activity ───────────────────────────────────────

SIGN_UP = "SIGN_UP"
SIGN_IN = "SIGN_IN"
SIGN_OUT = "SIGN_OUT"
UPDATE_PASSWORD = "UPDATE_PASSWORD"
SWITCH_COMPANY = "SWITCH_COMPANY"
SWITCH_PROJECT = "SWITCH_PROJECT"

# ─── Company / project ───────────────────────────────────

CREATE_COMPANY = "CREATE_COMPANY"
CREATE_PROJECT = "CREATE_PROJECT"
UPDATE_COMPANY_MEMBER_ROLE = "UPDATE_COMPANY_MEMBER_ROLE"
REMOVE_COMPANY_MEMBER = "REMOVE_COMPANY_MEMBER"
UPDATE_PROJECT_MEMBER_ROLE = "UPDATE_PROJECT_MEMBER_ROLE"
REMOVE_PROJECT_MEMBER = "REMOVE_PROJECT_MEMBER"

# ─── Invitations ─────────────────────────────────────────

INVITE_COMPANY_MEMBER = "INVITE_COMPANY_MEMBER"
INVITE_PROJECT_MEMBER = "INVITE_PROJECT_MEMBER"
REVOKE_COMPANY_INVITATION = "REVOKE_COMPANY_INVITATION"
ACCEPT_COMPANY_INVITATION = "ACCEPT_COMPANY_INVITATION"
ACCEPT_PROJECT_INVITATION = "ACCEPT_PROJECT_INVITATION"

# ─── Agents ──────────────────────────────────────────────

CREATE_AGENT = "CREATE_AGENT"
DELETE_AGENT = "DELETE_AGENT"
ISSUE_REGISTRATION_TOKEN = "ISSUE_REGISTRATION_TOKEN"
REGISTER_AGENT = "REGISTER_AGENT"
AGENT_AUTHENTICATED = "AGENT_AUTHENTICATED"
AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
AGENT_TOKEN_REFRESHED = "AGENT_TOKEN_REFRESHED"
ROTATE_AGENT_SECRET = "ROTATE_AGENT_SECRET"
