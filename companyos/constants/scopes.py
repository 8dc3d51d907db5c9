"""
Canonical role-to-scope matrix for AI commands.

IMPORTANT: This is the single source of truth for the built-in AI scope policy.
Tenants may override the matrix per role (see platform/policy_resolver.py);
roles absent from an override always fall back to these defaults.

A Scope is what a command wants to read. A Role is who is asking.
"""

from enum import Enum
from typing import FrozenSet, Optional


class Role(str, Enum):
    """
    Principal roles within a company workspace.

    Extensible: unknown role names are never an error and resolve to the
    EMPLOYEE entry (least privilege).
    """
    OWNER = "owner"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    CONTRACTOR = "contractor"


class Scope(str, Enum):
    """Data-sensitivity class an AI command wants to access."""
    GLOBAL = "global"
    FINANCIAL = "financial"
    HR = "hr"
    OWNER = "owner"


# Role used when the caller's role is missing or not in the policy
FALLBACK_ROLE = Role.EMPLOYEE

# Order is significant: the first entry is the default scope offered to the role
DEFAULT_ROLE_SCOPES: dict[Role, tuple[Scope, ...]] = {
    Role.OWNER: (Scope.GLOBAL, Scope.FINANCIAL, Scope.HR, Scope.OWNER),
    Role.MANAGER: (Scope.GLOBAL, Scope.FINANCIAL, Scope.HR),
    Role.EMPLOYEE: (Scope.GLOBAL,),
    Role.CONTRACTOR: (Scope.GLOBAL,),
}

DEFAULT_REQUIRE_CODE_FOR: FrozenSet[Scope] = frozenset([Scope.OWNER])

# Roles allowed to trigger expiration checks and edit AI policies
EXPIRATION_CHECK_ROLES: FrozenSet[Role] = frozenset([Role.OWNER, Role.MANAGER])
POLICY_ADMIN_ROLES: FrozenSet[Role] = frozenset([Role.OWNER])


def normalize_role(role: Optional[str]) -> str:
    """Lowercase and trim a role name. Missing roles become the fallback role."""
    if role is None:
        return FALLBACK_ROLE.value
    if isinstance(role, Role):
        return role.value
    normalized = str(role).strip().lower()
    return normalized or FALLBACK_ROLE.value


def parse_scope(value: Optional[str]) -> Optional[Scope]:
    """Parse a scope name. Returns None for unknown or empty values."""
    if value is None:
        return None
    if isinstance(value, Scope):
        return value
    try:
        return Scope(str(value).strip().lower())
    except ValueError:
        return None
