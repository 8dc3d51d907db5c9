"""
Database models for notifications, scanned business records and AI policies.

All models follow strict tenant isolation patterns.
Tenant-scoped models inherit from TenantScopedMixin.
"""

from companyos.models.base import TimestampMixin, TenantScopedMixin
from companyos.models.notification import (
    Notification,
    NotificationCandidate,
    NotificationPriority,
    NotificationType,
)
from companyos.models.business_records import (
    Contract,
    ContractStatus,
    Invoice,
    InvoiceStatus,
    RecordKind,
    Subscription,
    SubscriptionStatus,
)
from companyos.models.ai_policy import AIPolicySettings

__all__ = [
    "TimestampMixin",
    "TenantScopedMixin",
    "Notification",
    "NotificationCandidate",
    "NotificationPriority",
    "NotificationType",
    "Contract",
    "ContractStatus",
    "Invoice",
    "InvoiceStatus",
    "RecordKind",
    "Subscription",
    "SubscriptionStatus",
    "AIPolicySettings",
]
