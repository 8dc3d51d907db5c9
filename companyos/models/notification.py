"""
Notification model for in-app alerts raised by the expiration monitor.

This subsystem only creates notifications. Marking read and deleting are
done by the notification center, outside this service.

SECURITY:
- Tenant isolation via TenantScopedMixin
- tenant_id from JWT only
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, Column, Index, String, Text

from companyos.db_base import Base
from companyos.models.base import JSONType, TimestampMixin, TenantScopedMixin, generate_uuid


class NotificationType(str, enum.Enum):
    """Kinds of alerts raised by the expiration monitor."""
    CONTRACT_EXPIRATION = "contract_expiration"
    OVERDUE_INVOICE = "overdue_invoice"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"


class NotificationPriority(str, enum.Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"


def build_idempotency_key(
    tenant_id: str,
    notification_type: str,
    record_id: str,
    bucket: Optional[date] = None,
) -> str:
    """Idempotency key collapsing duplicate alerts for one record within one day."""
    bucket_str = (bucket or datetime.now(timezone.utc).date()).isoformat()
    return f"{tenant_id}:{notification_type}:{record_id}:{bucket_str}"


@dataclass
class NotificationCandidate:
    """
    A proposed notification, produced transiently by an expiration checker.

    cadence_day is the age in days used by re-notification cadence rules
    (days overdue for invoices). None when the kind has no cadence.
    """
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    action_url: str
    record_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    cadence_day: Optional[int] = None

    def __post_init__(self):
        self.metadata = {"record_id": self.record_id, **self.metadata}


class Notification(Base, TimestampMixin, TenantScopedMixin):
    """
    Persisted notification.

    record_id duplicates metadata["record_id"] so the dedup lookup is an
    indexed query. idempotency_key is unique per (tenant, type, record, day).
    """

    __tablename__ = "notifications"

    id = Column(
        String(255),
        primary_key=True,
        default=generate_uuid,
    )

    user_id = Column(String(255), nullable=True, index=True)
    type = Column(String(64), nullable=False, index=True)
    priority = Column(String(16), nullable=False)

    title = Column(String(500), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(1000), nullable=True)

    record_id = Column(String(255), nullable=True)
    idempotency_key = Column(String(512), nullable=True, unique=True)
    read = Column(Boolean, nullable=False, default=False)

    extra_metadata = Column("metadata", JSONType, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_notifications_tenant_type_record", "tenant_id", "type", "record_id"),
        Index("ix_notifications_tenant_read", "tenant_id", "read"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, tenant_id={self.tenant_id}, "
            f"type={self.type}, record_id={self.record_id})>"
        )

    @classmethod
    def from_candidate(
        cls,
        tenant_id: str,
        candidate: NotificationCandidate,
        user_id: Optional[str] = None,
        bucket: Optional[date] = None,
    ) -> "Notification":
        """Factory method building an unread notification from a candidate."""
        return cls(
            tenant_id=tenant_id,
            user_id=user_id,
            type=candidate.type.value,
            priority=candidate.priority.value,
            title=candidate.title,
            message=candidate.message,
            action_url=candidate.action_url,
            record_id=candidate.record_id,
            idempotency_key=build_idempotency_key(
                tenant_id, candidate.type.value, candidate.record_id, bucket
            ),
            read=False,
            extra_metadata=dict(candidate.metadata),
        )
