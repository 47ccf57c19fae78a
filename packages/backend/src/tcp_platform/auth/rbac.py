"""Role-based access control: static role → permission tables.

Two independent scopes:
- company roles: owner, billing_admin, admin, member
- project roles: project_owner, project_admin, developer, analyst

Lookups are plain set membership. Unknown roles have no permissions.

Role-change precedence (who may grant/revoke/change whose role) is
expressed as the pairwise predicates can_manage_company_role and
can_manage_project_role. Their ordering is security-relevant.
"""

import enum
from types import MappingProxyType
from typing import Mapping


class CompanyRole(str, enum.Enum):
    OWNER = "owner"
    BILLING_ADMIN = "billing_admin"
    ADMIN = "admin"
    MEMBER = "member"


class ProjectRole(str, enum.Enum):
    PROJECT_OWNER = "project_owner"
    PROJECT_ADMIN = "project_admin"
    DEVELOPER = "developer"
    ANALYST = "analyst"


COMPANY_PERMISSIONS: Mapping[str, frozenset[str]] = MappingProxyType({
    CompanyRole.OWNER.value: frozenset({
        "company:read",
        "company:update",
        "company:delete",
        "company:billing",
        "company:members:read",
        "company:members:write",
        "company:members:delete",
        "company:projects:create",
        "company:projects:delete",
        "company:invites:create",
        "company:invites:revoke",
    }),
    CompanyRole.BILLING_ADMIN.value: frozenset({
        "company:read",
        "company:billing",
        "company:members:read",
        "company:projects:read",
    }),
    CompanyRole.ADMIN.value: frozenset({
        "company:read",
        "company:update",
        "company:members:read",
        "company:members:write",
        "company:projects:create",
        "company:invites:create",
        "company:invites:revoke",
    }),
    CompanyRole.MEMBER.value: frozenset({
        "company:read",
        "company:members:read",
        "company:projects:read",
    }),
})

PROJECT_PERMISSIONS: Mapping[str, frozenset[str]] = MappingProxyType({
    ProjectRole.PROJECT_OWNER.value: frozenset({
        "project:read",
        "project:update",
        "project:delete",
        "project:members:read",
        "project:members:write",
        "project:members:delete",
        "project:agents:create",
        "project:agents:read",
        "project:agents:update",
        "project:agents:delete",
        "project:invites:create",
        "project:invites:revoke",
        "project:data:read",
        "project:data:write",
        "project:data:delete",
    }),
    ProjectRole.PROJECT_ADMIN.value: frozenset({
        "project:read",
        "project:update",
        "project:members:read",
        "project:members:write",
        "project:agents:create",
        "project:agents:read",
        "project:agents:update",
        "project:invites:create",
        "project:data:read",
        "project:data:write",
    }),
    ProjectRole.DEVELOPER.value: frozenset({
        "project:read",
        "project:members:read",
        "project:agents:read",
        "project:agents:update",
        "project:data:read",
        "project:data:write",
    }),
    ProjectRole.ANALYST.value: frozenset({
        "project:read",
        "project:members:read",
        "project:agents:read",
        "project:data:read",
    }),
})


def _role_value(role) -> str:
    return role.value if isinstance(role, enum.Enum) else str(role)


def has_company_permission(role, permission: str) -> bool:
    return permission in COMPANY_PERMISSIONS.get(_role_value(role), frozenset())


def has_project_permission(role, permission: str) -> bool:
    return permission in PROJECT_PERMISSIONS.get(_role_value(role), frozenset())


def get_company_permissions(role) -> frozenset[str]:
    return COMPANY_PERMISSIONS.get(_role_value(role), frozenset())


def get_project_permissions(role) -> frozenset[str]:
    return PROJECT_PERMISSIONS.get(_role_value(role), frozenset())


def can_manage_company_role(actor_role, target_role) -> bool:
    """May `actor_role` assign, change or remove `target_role`?"""
    actor = _role_value(actor_role)
    target = _role_value(target_role)

    # Only owners manage owners and billing admins
    if target in (CompanyRole.OWNER.value, CompanyRole.BILLING_ADMIN.value):
        return actor == CompanyRole.OWNER.value

    if target == CompanyRole.MEMBER.value:
        return actor in (CompanyRole.OWNER.value, CompanyRole.ADMIN.value)

    # Admins don't manage their peers
    if target == CompanyRole.ADMIN.value:
        return actor == CompanyRole.OWNER.value

    return False


def can_manage_project_role(actor_role, target_role) -> bool:
    """May `actor_role` assign, change or remove `target_role`?"""
    actor = _role_value(actor_role)
    target = _role_value(target_role)

    if target in (ProjectRole.PROJECT_OWNER.value, ProjectRole.PROJECT_ADMIN.value):
        return actor == ProjectRole.PROJECT_OWNER.value

    if target in (ProjectRole.DEVELOPER.value, ProjectRole.ANALYST.value):
        return actor in (
            ProjectRole.PROJECT_OWNER.value,
            ProjectRole.PROJECT_ADMIN.value,
        )

    return False
