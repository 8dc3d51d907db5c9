"""
Scope-based authorization gateway for AI commands.

Decides whether a principal (role + optional override code) may run a
natural-language command against a requested data scope.

Decision table (evaluated once, not as independent checks):

    native  code_required  code_valid  ->  decision
    yes     no             -               allow            (no audit event)
    -       yes            no              deny             blocked / code-required
    no      no             yes             allow, elevated  granted_via_code / role-elevation
    no      no             no              deny             blocked / role-restriction
    yes     yes            yes             allow, elevated  granted_via_code / required-code

A valid code never downgrades a native allow. Every deny and every elevated
allow produces exactly one audit event. authorize() never raises.

Usage:
    from companyos.platform.access_gateway import AccessGateway, AuthorizationRequest

    gateway = AccessGateway(AuditSink(SqlAuditStore(db)))
    decision = gateway.authorize(
        AuthorizationRequest(role="employee", scope="financial", query="Q3 spend"),
        policy,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
    )
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from companyos.constants.scopes import normalize_role, parse_scope
from companyos.platform.audit import AuditAction, AuditSink, AuditStatus
from companyos.platform.errors import AuthorizationDenied
from companyos.platform.policy_resolver import DEFAULT_POLICY, Policy, scopes_for

logger = logging.getLogger(__name__)

# Audit details bounds
AUDIT_QUERY_MAX_LENGTH = 160
EXECUTED_QUERY_MAX_LENGTH = 200

ACCESS_CODE_MIN_LENGTH = 4
ACCESS_CODE_PLAIN_MIN_LENGTH = 8
_ACCESS_CODE_KEYWORDS = re.compile(r"owner|master|admin", re.IGNORECASE)

# User-facing denial reasons
REASON_CODE_REQUIRED = "access code required"
REASON_INSUFFICIENT_PERMISSIONS = "insufficient permissions"

# Audit reasons
AUDIT_REASON_CODE_REQUIRED = "code-required"
AUDIT_REASON_ROLE_RESTRICTION = "role-restriction"
AUDIT_REASON_REQUIRED_CODE = "required-code"
AUDIT_REASON_ROLE_ELEVATION = "role-elevation"


def validate_access_code(code: Optional[str]) -> bool:
    """
    Heuristic gate for override codes.

    Valid when the trimmed code is at least 4 characters and either contains
    one of the override keywords or is at least 8 characters long.
    """
    if not code or not isinstance(code, str):
        return False
    trimmed = code.strip()
    if len(trimmed) < ACCESS_CODE_MIN_LENGTH:
        return False
    if _ACCESS_CODE_KEYWORDS.search(trimmed):
        return True
    return len(trimmed) >= ACCESS_CODE_PLAIN_MIN_LENGTH


def truncate_query(query: Optional[str], limit: int = AUDIT_QUERY_MAX_LENGTH) -> Optional[str]:
    if query is None:
        return None
    return str(query)[:limit]


@dataclass(frozen=True)
class AuthorizationRequest:
    """An AI command request as seen by the gateway."""
    role: Optional[str]
    scope: Any
    access_code: Optional[str] = None
    query: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationDecision:
    """Result of an authorization check."""
    allowed: bool
    elevated: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "elevated": self.elevated,
            "reason": self.reason,
        }


class AccessGateway:
    """Authorization state machine for AI command scopes."""

    def __init__(self, audit_sink: Optional[AuditSink] = None):
        self.audit_sink = audit_sink

    def _emit(
        self,
        action: AuditAction,
        status: AuditStatus,
        reason: str,
        request: AuthorizationRequest,
        scope_value: str,
        tenant_id: Optional[str],
        user_id: Optional[str],
    ) -> None:
        if self.audit_sink is None:
            return
        self.audit_sink.record(
            action,
            details={
                "reason": reason,
                "scope": scope_value,
                "role": normalize_role(request.role),
                "query": truncate_query(request.query),
            },
            status=status,
            tenant_id=tenant_id,
            user_id=user_id,
        )

    def authorize(
        self,
        request: AuthorizationRequest,
        policy: Optional[Policy] = None,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AuthorizationDecision:
        """
        Decide whether the request may run against its scope. Never raises.

        Args:
            request: Role, scope, optional access code and query
            policy: Resolved policy (defaults to the built-in policy)
            tenant_id: Tenant for audit context
            user_id: Caller for audit context

        Returns:
            AuthorizationDecision
        """
        policy = policy or DEFAULT_POLICY
        scope = parse_scope(request.scope)
        scope_value = scope.value if scope else str(request.scope)

        try:
            has_native = scope is not None and scope in scopes_for(request.role, policy)
            code_required = scope is not None and scope in policy.require_code_for
        except Exception:
            # Fail closed on authorization
            logger.error(
                "Scope policy evaluation failed",
                extra={"tenant_id": tenant_id, "scope": scope_value},
                exc_info=True,
            )
            has_native = False
            code_required = False

        if has_native and not code_required:
            return AuthorizationDecision(allowed=True, elevated=False)

        code_valid = validate_access_code(request.access_code)

        if code_required and not code_valid:
            self._emit(
                AuditAction.AI_BLOCKED, AuditStatus.FAILURE, AUDIT_REASON_CODE_REQUIRED,
                request, scope_value, tenant_id, user_id,
            )
            return AuthorizationDecision(allowed=False, reason=REASON_CODE_REQUIRED)

        if not has_native:
            if code_valid:
                self._emit(
                    AuditAction.AI_GRANTED_VIA_CODE, AuditStatus.WARNING, AUDIT_REASON_ROLE_ELEVATION,
                    request, scope_value, tenant_id, user_id,
                )
                return AuthorizationDecision(allowed=True, elevated=True)
            self._emit(
                AuditAction.AI_BLOCKED, AuditStatus.FAILURE, AUDIT_REASON_ROLE_RESTRICTION,
                request, scope_value, tenant_id, user_id,
            )
            return AuthorizationDecision(allowed=False, reason=REASON_INSUFFICIENT_PERMISSIONS)

        self._emit(
            AuditAction.AI_GRANTED_VIA_CODE, AuditStatus.WARNING, AUDIT_REASON_REQUIRED_CODE,
            request, scope_value, tenant_id, user_id,
        )
        return AuthorizationDecision(allowed=True, elevated=True)

    def record_command_outcome(
        self,
        scope: Any,
        query: Optional[str],
        elevated: bool = False,
        error: Optional[str] = None,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Record that an authorized command executed or failed."""
        if self.audit_sink is None:
            return
        parsed = parse_scope(scope)
        details: dict[str, Any] = {
            "scope": parsed.value if parsed else str(scope),
            "query": truncate_query(query, EXECUTED_QUERY_MAX_LENGTH),
        }
        if error is None:
            details["elevated"] = bool(elevated)
            self.audit_sink.record(
                AuditAction.AI_EXECUTED, details, AuditStatus.SUCCESS, tenant_id, user_id
            )
        else:
            details["error"] = error
            self.audit_sink.record(
                AuditAction.AI_ERROR, details, AuditStatus.FAILURE, tenant_id, user_id
            )


def authorize_ai_scope(
    request: AuthorizationRequest,
    policy: Optional[Policy] = None,
    audit_sink: Optional[AuditSink] = None,
    tenant_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> AuthorizationDecision:
    """Module-level entry point for a one-off authorization check."""
    return AccessGateway(audit_sink).authorize(request, policy, tenant_id=tenant_id, user_id=user_id)


def require_scope(decision: AuthorizationDecision, scope: Any = None) -> None:
    """Raise AuthorizationDenied if the decision is a denial."""
    if not decision.allowed:
        parsed = parse_scope(scope)
        raise AuthorizationDenied(
            decision.reason or REASON_INSUFFICIENT_PERMISSIONS,
            scope=parsed.value if parsed else None,
        )
