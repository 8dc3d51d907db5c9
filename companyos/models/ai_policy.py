"""
Per-tenant AI scope policy override.

One row per tenant. Stores only the override; the built-in matrix in
constants/scopes.py is merged underneath at resolution time.
"""

from sqlalchemy import Column, String

from companyos.db_base import Base
from companyos.models.base import JSONType, TimestampMixin, TenantScopedMixin


class AIPolicySettings(Base, TimestampMixin, TenantScopedMixin):
    """Tenant AI policy override."""

    __tablename__ = "ai_policy_settings"

    id = Column(String(255), primary_key=True)
    role_scopes = Column(JSONType, nullable=False, default=dict)
    require_code_for = Column(JSONType, nullable=True)
    updated_by = Column(String(255), nullable=False, default="system")

    def to_override(self) -> dict:
        """Return the stored override in the shape resolve_policy() accepts."""
        override = {"role_scopes": dict(self.role_scopes or {})}
        if self.require_code_for is not None:
            override["require_code_for"] = list(self.require_code_for)
        return override
