"""
AI scope policy resolution.

Merges a tenant-supplied policy override over the built-in role-to-scope
matrix and answers which scopes a role holds natively.

Merge rules:
- Role keys are case-normalized to lowercase
- A role present in the override fully replaces the default list for that role
- Roles absent from the override fall back to the default list
- requireCodeFor defaults to {owner} when not overridden
- Unknown roles resolve to the employee entry (least privilege, never an error)

All functions here are pure and safe to call concurrently.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from companyos.constants.scopes import (
    DEFAULT_REQUIRE_CODE_FOR,
    DEFAULT_ROLE_SCOPES,
    FALLBACK_ROLE,
    Role,
    Scope,
    normalize_role,
    parse_scope,
)

logger = logging.getLogger(__name__)


def _default_role_scopes() -> dict[str, tuple[Scope, ...]]:
    return {role.value: scopes for role, scopes in DEFAULT_ROLE_SCOPES.items()}


@dataclass(frozen=True)
class Policy:
    """
    Resolved AI scope policy.

    role_scopes maps normalized role names to an ordered, non-empty tuple of
    scopes. require_code_for lists scopes that demand a valid override code
    regardless of role membership.
    """
    role_scopes: Mapping[str, tuple[Scope, ...]] = field(default_factory=_default_role_scopes)
    require_code_for: frozenset = DEFAULT_REQUIRE_CODE_FOR

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and settings storage."""
        return {
            "role_scopes": {
                role: [scope.value for scope in scopes]
                for role, scopes in self.role_scopes.items()
            },
            "require_code_for": sorted(scope.value for scope in self.require_code_for),
        }


DEFAULT_POLICY = Policy()


def _clean_scope_list(values: Optional[Iterable[Any]]) -> tuple[Scope, ...]:
    """Parse scope names, dropping unknown ones and duplicates while keeping order."""
    if not values or isinstance(values, str):
        return ()
    cleaned: list[Scope] = []
    for value in values:
        scope = parse_scope(value)
        if scope is None:
            logger.warning("Ignoring unknown scope in policy override", extra={"scope": value})
            continue
        if scope not in cleaned:
            cleaned.append(scope)
    return tuple(cleaned)


def resolve_policy(tenant_policy: Optional[Mapping[str, Any]] = None) -> Policy:
    """
    Merge a tenant policy override over the built-in default.

    Accepts both snake_case (role_scopes, require_code_for) and the
    camelCase keys used by stored settings documents (roleScopes,
    requireCodeFor).

    Args:
        tenant_policy: Optional override mapping

    Returns:
        Resolved Policy
    """
    if isinstance(tenant_policy, Policy):
        return tenant_policy

    role_scopes = _default_role_scopes()
    require_code_for = DEFAULT_REQUIRE_CODE_FOR

    if not tenant_policy:
        return Policy(role_scopes=role_scopes, require_code_for=require_code_for)

    overrides = tenant_policy.get("role_scopes", tenant_policy.get("roleScopes")) or {}
    for role_name, scopes in overrides.items():
        normalized = normalize_role(role_name)
        cleaned = _clean_scope_list(scopes)
        if cleaned:
            role_scopes[normalized] = cleaned
        else:
            # Empty override keeps the role on its default list (or least privilege)
            logger.warning(
                "Empty scope list in policy override, keeping default",
                extra={"role": normalized},
            )
            role_scopes.setdefault(normalized, role_scopes[FALLBACK_ROLE.value])

    code_override = tenant_policy.get("require_code_for", tenant_policy.get("requireCodeFor"))
    if code_override is not None:
        require_code_for = frozenset(_clean_scope_list(code_override))

    return Policy(role_scopes=role_scopes, require_code_for=require_code_for)


def scopes_for(role: Optional[str], policy: Optional[Policy] = None) -> tuple[Scope, ...]:
    """
    Scopes the role holds natively, in policy order.

    Unknown roles fall back to the employee entry. Never empty.
    """
    policy = policy or DEFAULT_POLICY
    scopes = policy.role_scopes.get(normalize_role(role))
    if not scopes:
        scopes = policy.role_scopes.get(FALLBACK_ROLE.value) or DEFAULT_ROLE_SCOPES[FALLBACK_ROLE]
    return scopes


def default_scope(role: Optional[str], policy: Optional[Policy] = None) -> Scope:
    """First scope offered to the role."""
    return scopes_for(role, policy)[0]


def can_access_scope(role: Optional[str], scope: Any, policy: Optional[Policy] = None) -> bool:
    """Check native scope membership. Unknown scopes are never held."""
    parsed = parse_scope(scope)
    if parsed is None:
        return False
    return parsed in scopes_for(role, policy)


def scope_options(role: Optional[str], policy: Optional[Policy] = None) -> list[Scope]:
    """
    Scopes the role may attempt, in canonical order.

    A scope is offered when the role holds it natively or when it can be
    unlocked with an override code.
    """
    policy = policy or DEFAULT_POLICY
    native = scopes_for(role, policy)
    return [
        scope for scope in Scope
        if scope in native or scope in policy.require_code_for
    ]


def ensure_owner_scope_present(policy: Policy) -> Policy:
    """Return a policy in which the owner role always holds the owner scope."""
    owner_scopes = tuple(policy.role_scopes.get(Role.OWNER.value, ()))
    if Scope.OWNER in owner_scopes:
        return policy
    role_scopes = dict(policy.role_scopes)
    role_scopes[Role.OWNER.value] = owner_scopes + (Scope.OWNER,)
    return Policy(role_scopes=role_scopes, require_code_for=policy.require_code_for)
