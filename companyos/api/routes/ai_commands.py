"""
AI command authorization API routes.

Provides endpoints for:
- Authorizing an AI command against a data scope
- Listing the scopes offered to the caller's role
- Reading and updating the tenant AI scope policy

SECURITY: All routes require valid tenant context from JWT.
Role and tenant come from the token, never from the request body.
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from companyos.constants.scopes import POLICY_ADMIN_ROLES
from companyos.database.session import get_db_session
from companyos.platform.access_gateway import (
    AccessGateway,
    AuthorizationRequest,
    require_scope,
)
from companyos.platform.audit import AuditSink, SqlAuditStore
from companyos.platform.errors import GENERIC_RETRY_MESSAGE, AuthorizationDenied
from companyos.platform.policy_resolver import default_scope, scope_options
from companyos.platform.tenant_context import get_tenant_context
from companyos.services.ai_policy_service import AIPolicyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


# =============================================================================
# Request / Response Models
# =============================================================================


class AuthorizeRequest(BaseModel):
    scope: str = Field(..., min_length=1, max_length=32)
    access_code: Optional[str] = Field(None, max_length=256)
    query: Optional[str] = Field(None, max_length=10000)


class AuthorizeResponse(BaseModel):
    allowed: bool
    elevated: bool
    reason: Optional[str] = None


class ScopeOptionsResponse(BaseModel):
    role: str
    default_scope: str
    scopes: List[str]
    requires_code: List[str]


class PolicyBody(BaseModel):
    role_scopes: Dict[str, List[str]] = Field(default_factory=dict)
    require_code_for: Optional[List[str]] = None


# =============================================================================
# Routes
# =============================================================================


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize_command(
    request: Request,
    body: AuthorizeRequest,
    db_session=Depends(get_db_session),
):
    """
    Authorize an AI command for the requested scope.

    Returns 403 with a short reason on denial.
    """
    tenant_ctx = get_tenant_context(request)
    policy = AIPolicyService(db_session, tenant_ctx.tenant_id).get_policy()
    gateway = AccessGateway(AuditSink(SqlAuditStore(db_session), session_id=tenant_ctx.session_id))

    decision = gateway.authorize(
        AuthorizationRequest(
            role=tenant_ctx.role,
            scope=body.scope,
            access_code=body.access_code,
            query=body.query,
        ),
        policy,
        tenant_id=tenant_ctx.tenant_id,
        user_id=tenant_ctx.user_id,
    )

    try:
        require_scope(decision, body.scope)
    except AuthorizationDenied as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

    return AuthorizeResponse(**decision.to_dict())


@router.get("/scopes", response_model=ScopeOptionsResponse)
async def list_scopes(request: Request, db_session=Depends(get_db_session)):
    """Scopes the caller may attempt, and which of them need an override code."""
    tenant_ctx = get_tenant_context(request)
    policy = AIPolicyService(db_session, tenant_ctx.tenant_id).get_policy()
    options = scope_options(tenant_ctx.role, policy)
    return ScopeOptionsResponse(
        role=tenant_ctx.role,
        default_scope=default_scope(tenant_ctx.role, policy).value,
        scopes=[scope.value for scope in options],
        requires_code=[scope.value for scope in options if scope in policy.require_code_for],
    )


@router.get("/policy")
async def get_policy(request: Request, db_session=Depends(get_db_session)):
    """Resolved AI scope policy for the tenant."""
    tenant_ctx = get_tenant_context(request)
    return AIPolicyService(db_session, tenant_ctx.tenant_id).get_policy().to_dict()


@router.put("/policy")
async def update_policy(
    request: Request,
    body: PolicyBody,
    db_session=Depends(get_db_session),
):
    """Replace the tenant AI scope policy override. Owners only."""
    tenant_ctx = get_tenant_context(request)
    if tenant_ctx.role not in {role.value for role in POLICY_ADMIN_ROLES}:
        logger.warning(
            "AI policy update denied",
            extra={"tenant_id": tenant_ctx.tenant_id, "role": tenant_ctx.role},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action",
        )

    service = AIPolicyService(db_session, tenant_ctx.tenant_id)
    try:
        policy = service.save_policy(
            body.model_dump(exclude_none=True),
            user_id=tenant_ctx.user_id,
            audit_sink=AuditSink(SqlAuditStore(db_session), session_id=tenant_ctx.session_id),
        )
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=GENERIC_RETRY_MESSAGE,
        )
    return policy.to_dict()


class CommandOutcomeRequest(BaseModel):
    scope: str = Field(..., min_length=1, max_length=32)
    query: Optional[str] = Field(None, max_length=10000)
    elevated: bool = False
    error: Optional[str] = Field(None, max_length=2000)


@router.post("/outcome", status_code=status.HTTP_204_NO_CONTENT)
async def record_command_outcome(
    request: Request,
    body: CommandOutcomeRequest,
    db_session=Depends(get_db_session),
):
    """Record that an authorized AI command executed or failed."""
    tenant_ctx = get_tenant_context(request)
    gateway = AccessGateway(AuditSink(SqlAuditStore(db_session), session_id=tenant_ctx.session_id))
    gateway.record_command_outcome(
        scope=body.scope,
        query=body.query,
        elevated=body.elevated,
        error=body.error,
        tenant_id=tenant_ctx.tenant_id,
        user_id=tenant_ctx.user_id,
    )
