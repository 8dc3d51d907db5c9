"""
Platform layer: tenant context, AI scope authorization and audit logging.

Usage:
    from companyos.platform import AccessGateway, AuthorizationRequest, get_tenant_context
"""

from companyos.platform.errors import (
    AuditWriteFailure,
    AuthorizationDenied,
    CheckerFailure,
    CompanyOSError,
    StoreUnavailable,
)
from companyos.platform.tenant_context import (
    TenantContext,
    TenantContextMiddleware,
    get_tenant_context,
)
from companyos.platform.audit import (
    AuditAction,
    AuditEvent,
    AuditSink,
    AuditStatus,
    SqlAuditStore,
)
from companyos.platform.policy_resolver import Policy, resolve_policy
from companyos.platform.access_gateway import (
    AccessGateway,
    AuthorizationDecision,
    AuthorizationRequest,
    authorize_ai_scope,
)

__all__ = [
    "AuditWriteFailure",
    "AuthorizationDenied",
    "CheckerFailure",
    "CompanyOSError",
    "StoreUnavailable",
    "TenantContext",
    "TenantContextMiddleware",
    "get_tenant_context",
    "AuditAction",
    "AuditEvent",
    "AuditSink",
    "AuditStatus",
    "SqlAuditStore",
    "Policy",
    "resolve_policy",
    "AccessGateway",
    "AuthorizationDecision",
    "AuthorizationRequest",
    "authorize_ai_scope",
]
