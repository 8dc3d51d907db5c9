"""
Business records scanned by the expiration monitor.

Contracts, invoices and subscriptions are owned by the workspace modules;
this service only reads them. Dates are date-only: urgency is computed as a
whole-day difference against today's UTC date.
"""

import enum

from sqlalchemy import Boolean, Column, Date, Numeric, String

from companyos.db_base import Base
from companyos.models.base import TimestampMixin, TenantScopedMixin, generate_uuid


class RecordKind(str, enum.Enum):
    """Kinds of records with a lifecycle date."""
    CONTRACT = "contract"
    INVOICE = "invoice"
    SUBSCRIPTION = "subscription"


class ContractStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Contract(Base, TimestampMixin, TenantScopedMixin):
    """Contract with an end date."""

    __tablename__ = "contracts"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=True)
    reference = Column(String(255), nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String(32), nullable=False, default=ContractStatus.ACTIVE.value)

    @property
    def display_name(self) -> str:
        return self.name or self.reference or "Unnamed Contract"


class Invoice(Base, TimestampMixin, TenantScopedMixin):
    """Customer invoice with a due date."""

    __tablename__ = "invoices"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    invoice_number = Column(String(64), nullable=True)
    total = Column(Numeric(12, 2), nullable=True)
    due_date = Column(Date, nullable=True)
    status = Column(String(32), nullable=False, default=InvoiceStatus.SENT.value)

    @property
    def display_number(self) -> str:
        return self.invoice_number or self.id


class Subscription(Base, TimestampMixin, TenantScopedMixin):
    """Recurring vendor subscription with a next billing date."""

    __tablename__ = "subscriptions"

    id = Column(String(255), primary_key=True, default=generate_uuid)
    plan_name = Column(String(255), nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    next_billing_date = Column(Date, nullable=True)
    status = Column(String(32), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    auto_renew = Column(Boolean, nullable=False, default=True)

    @property
    def display_name(self) -> str:
        return self.plan_name or "Subscription"
