"""
Expiration check API routes.

On-demand trigger for the expiration monitor, called when the workspace
opens. The recurring run is handled by jobs/expiration_monitor.py.

SECURITY: Owners and managers only. tenant_id from JWT only.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from companyos.config.expiration_monitor import get_expiration_config
from companyos.constants.scopes import EXPIRATION_CHECK_ROLES
from companyos.database.session import get_db_session
from companyos.platform.tenant_context import get_tenant_context
from companyos.services.expiration_orchestrator import RunThrottle, run_expiration_checks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

_throttle: Optional[RunThrottle] = None


def get_run_throttle() -> RunThrottle:
    """Process-wide throttle for on-demand runs."""
    global _throttle
    if _throttle is None:
        minutes = get_expiration_config().schedule.min_interval_minutes
        _throttle = RunThrottle(min_interval_seconds=minutes * 60)
    return _throttle


class ExpirationCheckResponse(BaseModel):
    contracts: int
    invoices: int
    subscriptions: int
    total: int
    skipped: bool = False


@router.post("/expiration-checks", response_model=ExpirationCheckResponse)
async def trigger_expiration_checks(
    request: Request,
    db_session=Depends(get_db_session),
    throttle: RunThrottle = Depends(get_run_throttle),
):
    """Run the expiration checks for the caller's tenant."""
    tenant_ctx = get_tenant_context(request)
    if tenant_ctx.role not in {role.value for role in EXPIRATION_CHECK_ROLES}:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action",
        )

    result = await run_expiration_checks(
        db_session,
        tenant_ctx.tenant_id,
        user_id=tenant_ctx.user_id,
        throttle=throttle,
    )
    return ExpirationCheckResponse(**result.to_dict(), skipped=result.skipped)
