# rbac.py — Role hierarchy, permission table and request authorization
# - 3-tier hierarchy: owner > admin > viewer
# - Static role → permission table (audit:read is owner-only)
# - Named access decisions used by the task and audit services
# - Requirement descriptors attached to routes at registration time

from dataclasses import dataclass
from enum import Enum as PyEnum
from types import MappingProxyType
from typing import Iterable, Optional, Tuple, Union

from models import Role


# ============================================================
# ROLE HIERARCHY
# ============================================================

ROLE_HIERARCHY = MappingProxyType({
    Role.OWNER: 3,
    Role.ADMIN: 2,
    Role.VIEWER: 1,
})


def rank(role: Union[Role, str]) -> int:
    return ROLE_HIERARCHY[Role(role)]


def meets_or_exceeds(actual: Union[Role, str], required: Union[Role, str]) -> bool:
    """True when ``actual`` is at least as privileged as ``required``"""
    return rank(actual) >= rank(required)


# ============================================================
# PERMISSION TABLE
# ============================================================

class Permission(str, PyEnum):
    TASK_CREATE = "task:create"
    TASK_READ = "task:read"
    TASK_UPDATE = "task:update"
    TASK_DELETE = "task:delete"
    AUDIT_READ = "audit:read"


# audit:read is owner-only and not derived from rank
ROLE_PERMISSIONS = MappingProxyType({
    Role.OWNER: frozenset({
        Permission.TASK_CREATE, Permission.TASK_READ,
        Permission.TASK_UPDATE, Permission.TASK_DELETE,
        Permission.AUDIT_READ,
    }),
    Role.ADMIN: frozenset({
        Permission.TASK_CREATE, Permission.TASK_READ,
        Permission.TASK_UPDATE, Permission.TASK_DELETE,
    }),
    Role.VIEWER: frozenset({
        Permission.TASK_READ,
    }),
})


def permissions_for(role: Union[Role, str]) -> frozenset:
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return frozenset()


def has_permission(role: Union[Role, str], permission: Union[Permission, str]) -> bool:
    """Membership test against the static table; unknown tags are never held"""
    try:
        permission = Permission(permission)
    except ValueError:
        return False
    return permission in permissions_for(role)


# ============================================================
# ACCESS DECISIONS
# ============================================================

def can_create_task(role: Union[Role, str]) -> bool:
    return meets_or_exceeds(role, Role.ADMIN)


def can_update_or_delete_task(role: Union[Role, str]) -> bool:
    return meets_or_exceeds(role, Role.ADMIN)


def can_view_audit_log(role: Union[Role, str]) -> bool:
    # Strict identity: admin ranks above viewer but must not read audit history
    return Role(role) == Role.OWNER


# ============================================================
# REQUEST AUTHORIZATION
# ============================================================

ROLE_REQUIREMENT = "role"
PERMISSION_REQUIREMENT = "permission"


@dataclass(frozen=True)
class Requirement:
    """Declared access requirement for a single operation.

    ``kind`` is either ``"role"`` (any declared role, or higher, suffices) or
    ``"permission"`` (every declared permission must be held). An empty
    ``values`` tuple makes the operation public with respect to role.
    """
    kind: str
    values: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.kind not in (ROLE_REQUIREMENT, PERMISSION_REQUIREMENT):
            raise ValueError(f"Unknown requirement kind: {self.kind}")

    @classmethod
    def roles(cls, *roles: Union[Role, str]) -> "Requirement":
        return cls(ROLE_REQUIREMENT, tuple(Role(r) for r in roles))

    @classmethod
    def permissions(cls, *permissions: Union[Permission, str]) -> "Requirement":
        return cls(PERMISSION_REQUIREMENT, tuple(Permission(p) for p in permissions))


def _role_allows(role, required: Iterable) -> bool:
    return any(meets_or_exceeds(role, r) for r in required)


def _permissions_allow(role, required: Iterable) -> bool:
    return all(has_permission(role, p) for p in required)


def authorize(principal, requirement: Optional[Requirement]) -> bool:
    """Coarse allow/deny for ``principal`` (anything with a ``role``) or None.

    Returns a boolean only; the caller decides whether a denial is an
    authentication failure (no principal) or an authorization failure.
    """
    if requirement is None or not requirement.values:
        return True
    if principal is None:
        return False
    if requirement.kind == ROLE_REQUIREMENT:
        return _role_allows(principal.role, requirement.values)
    return _permissions_allow(principal.role, requirement.values)
