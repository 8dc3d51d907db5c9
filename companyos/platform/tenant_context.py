"""
Tenant context enforcement.

Extracts the tenant, user and role from a signed bearer JWT and attaches a
TenantContext to request.state. Route handlers read it with
get_tenant_context(); tenant_id is NEVER taken from body, query or path.

JWT claims used:
- sub: user id
- org_id: tenant id (company)
- org_role: workspace role (owner, manager, employee, contractor)
- sid: session id (optional, used as the audit session id)
"""

import logging
import os
from typing import Optional

import jwt
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from companyos.constants.scopes import normalize_role

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class TenantContext:
    """Immutable tenant context extracted from the JWT."""

    def __init__(
        self,
        tenant_id: str,
        user_id: str,
        role: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        if not tenant_id:
            raise ValueError("tenant_id cannot be empty")
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.role = normalize_role(role)
        self.session_id = session_id

    def __repr__(self) -> str:
        return f"<TenantContext(tenant_id={self.tenant_id}, user_id={self.user_id}, role={self.role})>"


def decode_token(token: str, secret: str) -> TenantContext:
    """
    Verify a bearer token and build the tenant context.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired or lacks claims
    """
    claims = jwt.decode(
        token,
        secret,
        algorithms=[JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )
    tenant_id = claims.get("org_id")
    if not tenant_id:
        raise jwt.InvalidTokenError("Token has no org_id claim")
    return TenantContext(
        tenant_id=tenant_id,
        user_id=claims["sub"],
        role=claims.get("org_role"),
        session_id=claims.get("sid"),
    )


def _forbidden(detail: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": detail})


class TenantContextMiddleware:
    """
    FastAPI HTTP middleware that enforces tenant context on /api/ routes.

    The signing secret is read lazily from JWT_SECRET so the module can be
    imported without configuration.
    """

    def __init__(self, secret: Optional[str] = None):
        self._secret = secret

    @property
    def secret(self) -> Optional[str]:
        return self._secret or os.getenv("JWT_SECRET")

    async def __call__(self, request: Request, call_next):
        path = request.url.path
        if path in PUBLIC_PATHS or not path.startswith("/api/"):
            return await call_next(request)

        secret = self.secret
        if not secret:
            logger.warning(
                "Authentication not configured - protected endpoint accessed",
                extra={"path": path, "method": request.method},
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"detail": "Authentication service not configured"},
            )

        auth_header = request.headers.get("Authorization", "")
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            logger.warning(
                "Request missing authorization token",
                extra={"path": path, "method": request.method},
            )
            return _forbidden("Missing or invalid authorization token")

        try:
            request.state.tenant_context = decode_token(token, secret)
        except jwt.InvalidTokenError as e:
            logger.warning(
                "Invalid authorization token",
                extra={"path": path, "error": str(e)},
            )
            return _forbidden("Missing or invalid authorization token")

        return await call_next(request)


def get_tenant_context(request: Request) -> TenantContext:
    """
    Extract tenant context from request state.

    Raises 403 if tenant context is missing.
    """
    if not hasattr(request.state, "tenant_context"):
        logger.error("Route handler accessed without tenant context", extra={
            "path": request.url.path
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context not available"
        )

    return request.state.tenant_context
