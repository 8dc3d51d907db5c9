"""
Tenant AI policy service.

Loads and saves the per-tenant AI scope policy override and resolves it
against the built-in matrix.

Save rules:
- Role keys are lowercased
- requireCodeFor is de-duplicated and unknown scopes are dropped
- The owner role always keeps the owner scope

SECURITY: tenant_id from JWT only, never from client input.
"""

import logging
from typing import Any, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companyos.constants.scopes import normalize_role, parse_scope
from companyos.models.ai_policy import AIPolicySettings
from companyos.platform.audit import AuditAction, AuditSink, AuditStatus
from companyos.platform.policy_resolver import (
    DEFAULT_POLICY,
    Policy,
    ensure_owner_scope_present,
    resolve_policy,
)

logger = logging.getLogger(__name__)


def normalize_policy_override(override: Mapping[str, Any]) -> dict[str, Any]:
    """Clean an override before storage."""
    role_scopes_raw = override.get("role_scopes", override.get("roleScopes")) or {}
    role_scopes: dict[str, list[str]] = {}
    for role_name, scopes in role_scopes_raw.items():
        cleaned: list[str] = []
        for value in scopes or []:
            scope = parse_scope(value)
            if scope is not None and scope.value not in cleaned:
                cleaned.append(scope.value)
        role_scopes[normalize_role(role_name)] = cleaned

    normalized: dict[str, Any] = {"role_scopes": role_scopes}

    code_raw = override.get("require_code_for", override.get("requireCodeFor"))
    if code_raw is not None:
        require_code_for: list[str] = []
        for value in code_raw:
            scope = parse_scope(value)
            if scope is not None and scope.value not in require_code_for:
                require_code_for.append(scope.value)
        normalized["require_code_for"] = require_code_for

    return normalized


class AIPolicyService:
    """Per-tenant AI policy access."""

    def __init__(self, db_session: Session, tenant_id: str):
        if not tenant_id:
            raise ValueError("tenant_id is required")
        self.db = db_session
        self.tenant_id = tenant_id

    def _get_settings(self) -> Optional[AIPolicySettings]:
        return (
            self.db.query(AIPolicySettings)
            .filter(AIPolicySettings.tenant_id == self.tenant_id)
            .first()
        )

    def get_override(self) -> Optional[dict[str, Any]]:
        settings = self._get_settings()
        return settings.to_override() if settings else None

    def get_policy(self) -> Policy:
        """
        Resolve the tenant policy.

        Falls back to the built-in policy if the settings cannot be read, so
        that a settings outage degrades to defaults rather than failing
        every AI command.
        """
        try:
            override = self.get_override()
        except SQLAlchemyError:
            logger.error(
                "Failed to load AI policy, using defaults",
                extra={"tenant_id": self.tenant_id},
                exc_info=True,
            )
            return DEFAULT_POLICY
        return ensure_owner_scope_present(resolve_policy(override))

    def save_policy(
        self,
        override: Mapping[str, Any],
        user_id: Optional[str] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> Policy:
        """
        Store a new override for the tenant and return the resolved policy.

        Raises:
            SQLAlchemyError: If the write fails
        """
        normalized = normalize_policy_override(override)
        resolved = ensure_owner_scope_present(resolve_policy(normalized))
        # Persist the owner guarantee so the stored override matches what is enforced
        owner_scopes = normalized["role_scopes"].get("owner")
        if owner_scopes is not None:
            normalized["role_scopes"]["owner"] = [
                scope.value for scope in resolved.role_scopes["owner"]
            ]

        settings = self._get_settings()
        if settings is None:
            settings = AIPolicySettings(id=f"{self.tenant_id}:ai_policy", tenant_id=self.tenant_id)
            self.db.add(settings)
        settings.role_scopes = normalized["role_scopes"]
        settings.require_code_for = normalized.get("require_code_for")
        settings.updated_by = user_id or "system"

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(
                "Failed to save AI policy",
                extra={"tenant_id": self.tenant_id, "user_id": user_id},
                exc_info=True,
            )
            raise

        logger.info(
            "AI policy updated",
            extra={"tenant_id": self.tenant_id, "user_id": user_id},
        )
        if audit_sink is not None:
            audit_sink.record(
                AuditAction.SETTINGS_AI_POLICY_UPDATED,
                details=resolved.to_dict(),
                status=AuditStatus.SUCCESS,
                tenant_id=self.tenant_id,
                user_id=user_id,
            )
        return resolved
