"""
Expiration checkers for contracts, invoices and subscriptions.

Each checker scans one record kind for a tenant, classifies lifecycle
urgency as a whole-day difference against today's UTC date, proposes a
NotificationCandidate when a threshold is crossed, consults the shared
deduplication predicate, and writes accepted notifications.

Thresholds (defaults, see config/expiration_monitor.yml):

    contract       days_until <= 0 -> urgent (expired), 1..7 -> high, 8..30 -> normal
    invoice        overdue > 30 -> urgent, 15..30 -> high, 1..14 -> normal
    subscription   0..1 days until renewal -> high, 2..7 -> normal

run() returns the count of notifications actually created, never the
count of candidates proposed.

Concurrency: two overlapping runs for the same tenant may both observe
"no existing notification". The store's per-day idempotency key collapses
the second write.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from companyos.config.expiration_monitor import (
    ContractThresholds,
    ExpirationMonitorConfig,
    InvoiceThresholds,
    SubscriptionThresholds,
    get_expiration_config,
)
from companyos.models.business_records import RecordKind
from companyos.models.notification import (
    NotificationCandidate,
    NotificationPriority,
    NotificationType,
)
from companyos.services.notification_dedup import should_suppress
from companyos.services.notification_store import NotificationStore
from companyos.services.record_store import RecordStore

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def as_date(value: Any) -> Optional[date]:
    """Coerce a stored date, datetime or ISO string to a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            logger.warning("Unparseable record date", extra={"value": value})
    return None


def format_amount(value: Any) -> str:
    try:
        amount = Decimal(str(value if value is not None else 0))
    except (InvalidOperation, ValueError):
        amount = Decimal(0)
    return f"€{amount:,.2f}"


def plural_days(days: int) -> str:
    return f"{days} day{'' if days == 1 else 's'}"


class ExpirationChecker(ABC):
    """
    Base checker for one record kind.

    Subclasses implement is_candidate_record() and propose(). Re-notification
    cadence is a per-kind configuration value handed to the deduplicator.
    """

    kind: RecordKind
    notification_type: NotificationType

    def __init__(
        self,
        record_store: RecordStore,
        notification_store: NotificationStore,
        config: Optional[ExpirationMonitorConfig] = None,
    ):
        self.records = record_store
        self.notifications = notification_store
        self.config = config or get_expiration_config()

    @property
    def renotify_cadence_days(self) -> Optional[int]:
        return None

    @abstractmethod
    def is_candidate_record(self, record: Any) -> bool:
        """Whether the record is active and carries the relevant date."""

    @abstractmethod
    def propose(self, record: Any, today: date) -> Optional[NotificationCandidate]:
        """Classify the record and build a candidate, or None when outside all windows."""

    def collect_candidates(self, tenant_id: str, today: date) -> List[NotificationCandidate]:
        candidates = []
        for record in self.records.list(tenant_id, self.kind):
            if not self.is_candidate_record(record):
                continue
            candidate = self.propose(record, today)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def run(
        self,
        tenant_id: str,
        user_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> int:
        """
        Scan records, deduplicate, and create notifications.

        Raises:
            StoreUnavailable: If reading records or writing a notification fails

        Returns:
            Number of notifications created
        """
        today = today or utc_today()
        candidates = self.collect_candidates(tenant_id, today)
        if not candidates:
            return 0

        existing_unread = self.notifications.query(
            tenant_id, type=self.notification_type.value, unread_only=True
        )

        created = 0
        for candidate in candidates:
            if should_suppress(candidate, existing_unread, self.renotify_cadence_days):
                logger.debug(
                    "Notification suppressed",
                    extra={
                        "tenant_id": tenant_id,
                        "type": candidate.type.value,
                        "record_id": candidate.record_id,
                    },
                )
                continue
            notification_id = self.notifications.create(
                tenant_id, candidate, user_id=user_id, bucket=today
            )
            if notification_id:
                created += 1

        logger.info(
            "Expiration check completed",
            extra={
                "tenant_id": tenant_id,
                "kind": self.kind.value,
                "candidates": len(candidates),
                "created": created,
            },
        )
        return created


class ContractExpirationChecker(ExpirationChecker):
    """Alerts on contracts that expired or expire within the normal window."""

    kind = RecordKind.CONTRACT
    notification_type = NotificationType.CONTRACT_EXPIRATION

    @property
    def thresholds(self) -> ContractThresholds:
        return self.config.contracts

    def is_candidate_record(self, record: Any) -> bool:
        if as_date(getattr(record, "end_date", None)) is None:
            return False
        return str(getattr(record, "status", "") or "").lower() not in self.thresholds.skip_statuses

    def propose(self, record: Any, today: date) -> Optional[NotificationCandidate]:
        end_date = as_date(record.end_date)
        days_until = (end_date - today).days
        name = record.display_name
        action_url = f"/settings?tab=contracts&contract={record.id}"

        if days_until <= 0:
            return NotificationCandidate(
                type=self.notification_type,
                title=f"Contract Expired: {name}",
                message=(
                    f'The contract "{name}" expired on {end_date.isoformat()}. '
                    "Please review and renew if needed."
                ),
                priority=NotificationPriority.URGENT,
                action_url=action_url,
                record_id=str(record.id),
                metadata={
                    "contract_name": record.name,
                    "expired_date": end_date.isoformat(),
                    "days_overdue": abs(days_until),
                },
            )

        if days_until <= self.thresholds.high_within_days:
            priority = NotificationPriority.HIGH
            title = f"Contract Expiring Soon: {name}"
        elif days_until <= self.thresholds.normal_within_days:
            priority = NotificationPriority.NORMAL
            title = f"Contract Expiring: {name}"
        else:
            return None

        return NotificationCandidate(
            type=self.notification_type,
            title=title,
            message=(
                f'The contract "{name}" expires in {plural_days(days_until)} '
                f"({end_date.isoformat()})."
            ),
            priority=priority,
            action_url=action_url,
            record_id=str(record.id),
            metadata={
                "contract_name": record.name,
                "expiry_date": end_date.isoformat(),
                "days_until_expiry": days_until,
            },
        )


class OverdueInvoiceChecker(ExpirationChecker):
    """
    Alerts on unpaid invoices past their due date.

    Unread alerts are re-raised on the configured cadence so an invoice that
    stays unpaid keeps escalating instead of going silent after one alert.
    """

    kind = RecordKind.INVOICE
    notification_type = NotificationType.OVERDUE_INVOICE

    @property
    def thresholds(self) -> InvoiceThresholds:
        return self.config.invoices

    @property
    def renotify_cadence_days(self) -> Optional[int]:
        return self.thresholds.renotify_cadence_days

    def is_candidate_record(self, record: Any) -> bool:
        if as_date(getattr(record, "due_date", None)) is None:
            return False
        return str(getattr(record, "status", "") or "").lower() not in self.thresholds.skip_statuses

    def classify(self, days_overdue: int) -> NotificationPriority:
        if days_overdue > self.thresholds.urgent_after_days:
            return NotificationPriority.URGENT
        if days_overdue > self.thresholds.high_after_days:
            return NotificationPriority.HIGH
        return NotificationPriority.NORMAL

    def propose(self, record: Any, today: date) -> Optional[NotificationCandidate]:
        due_date = as_date(record.due_date)
        if due_date >= today:
            return None
        days_overdue = (today - due_date).days
        number = record.display_number

        return NotificationCandidate(
            type=self.notification_type,
            title=f"Overdue Invoice: {number}",
            message=(
                f"Invoice {number} for {format_amount(record.total)} is "
                f"{plural_days(days_overdue)} overdue."
            ),
            priority=self.classify(days_overdue),
            action_url=f"/modules/invoices?invoice={record.id}",
            record_id=str(record.id),
            metadata={
                "invoice_number": record.invoice_number,
                "amount": str(record.total) if record.total is not None else None,
                "days_overdue": days_overdue,
                "due_date": due_date.isoformat(),
            },
            cadence_day=days_overdue,
        )


class SubscriptionRenewalChecker(ExpirationChecker):
    """Alerts on auto-renewing subscriptions about to bill."""

    kind = RecordKind.SUBSCRIPTION
    notification_type = NotificationType.SUBSCRIPTION_RENEWAL

    @property
    def thresholds(self) -> SubscriptionThresholds:
        return self.config.subscriptions

    def is_candidate_record(self, record: Any) -> bool:
        if as_date(getattr(record, "next_billing_date", None)) is None:
            return False
        if str(getattr(record, "status", "") or "").lower() not in self.thresholds.active_statuses:
            return False
        if self.thresholds.require_auto_renew and not getattr(record, "auto_renew", False):
            return False
        return True

    def propose(self, record: Any, today: date) -> Optional[NotificationCandidate]:
        next_billing = as_date(record.next_billing_date)
        days_until = (next_billing - today).days
        if days_until < 0 or days_until > self.thresholds.normal_within_days:
            return None

        if days_until <= self.thresholds.high_within_days:
            priority = NotificationPriority.HIGH
        else:
            priority = NotificationPriority.NORMAL

        name = record.display_name
        return NotificationCandidate(
            type=self.notification_type,
            title=f"Subscription Renewal: {name}",
            message=(
                f'The subscription "{name}" will renew in {plural_days(days_until)} '
                f"({next_billing.isoformat()}) for {format_amount(record.amount)}."
            ),
            priority=priority,
            action_url=f"/modules/invoices?tab=subscriptions&subscription={record.id}",
            record_id=str(record.id),
            metadata={
                "plan_name": record.plan_name,
                "amount": str(record.amount) if record.amount is not None else None,
                "next_billing_date": next_billing.isoformat(),
                "days_until_renewal": days_until,
            },
        )
