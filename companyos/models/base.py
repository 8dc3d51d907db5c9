"""
Shared column types and mixins for companyos models.

- JSONType: JSON everywhere, JSONB on PostgreSQL
- generate_uuid: string primary keys
- TimestampMixin: server-side created_at / updated_at
- TenantScopedMixin: indexed tenant_id on every company-owned table
"""

import uuid

from sqlalchemy import Column, String, DateTime, JSON, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declared_attr


# SQLite in tests, JSONB in production
JSONType = JSON().with_variant(JSONB(), "postgresql")


def generate_uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Row timestamps set by the database server."""

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class TenantScopedMixin:
    """
    Company ownership column.

    SECURITY: the value is the org_id claim of the caller's JWT and is never
    read from a request body, query string or path.
    """

    @declared_attr
    def tenant_id(cls):
        return Column(String(255), nullable=False, index=True, comment="Company id from JWT org_id")
