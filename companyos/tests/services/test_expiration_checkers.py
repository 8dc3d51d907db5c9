"""
Tests for the contract, invoice and subscription expiration checkers.

Runs against the SQLite stores with a fixed "today" so thresholds are
exact whole-day differences.
"""

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from companyos.models.notification import Notification, NotificationPriority
from companyos.services.expiration_checkers import (
    ContractExpirationChecker,
    OverdueInvoiceChecker,
    SubscriptionRenewalChecker,
    as_date,
    format_amount,
    plural_days,
)
from companyos.services.notification_store import SqlNotificationStore
from companyos.services.record_store import SqlRecordStore


def _checker(cls, db_session):
    return cls(SqlRecordStore(db_session), SqlNotificationStore(db_session))


def _notifications(db_session, tenant_id):
    return db_session.query(Notification).filter(Notification.tenant_id == tenant_id).all()


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:

    def test_as_date_accepts_iso_strings(self):
        assert as_date("2024-06-15T23:30:00Z") == date(2024, 6, 15)

    def test_as_date_normalizes_aware_datetimes_to_utc(self):
        value = datetime(2024, 6, 16, 1, 0, tzinfo=timezone(timedelta(hours=3)))
        assert as_date(value) == date(2024, 6, 15)

    def test_as_date_rejects_garbage(self):
        assert as_date("not a date") is None
        assert as_date(None) is None

    def test_format_amount(self):
        assert format_amount("1250") == "€1,250.00"
        assert format_amount(None) == "€0.00"

    def test_plural_days(self):
        assert plural_days(1) == "1 day"
        assert plural_days(3) == "3 days"


# =============================================================================
# Contracts
# =============================================================================


class TestContractExpirationChecker:

    @pytest.mark.asyncio
    async def test_expired_contract_is_urgent_and_not_repeated(
        self, db_session, tenant_id, today, make_contract
    ):
        contract = make_contract(days_until=-1)
        checker = _checker(ContractExpirationChecker, db_session)

        first = await checker.run(tenant_id, today=today)
        second = await checker.run(tenant_id, today=today)

        assert first == 1
        assert second == 0
        [notification] = _notifications(db_session, tenant_id)
        assert notification.priority == "urgent"
        assert notification.title == "Contract Expired: Office Lease"
        assert notification.action_url == f"/settings?tab=contracts&contract={contract.id}"
        assert notification.extra_metadata["record_id"] == contract.id
        assert notification.extra_metadata["days_overdue"] == 1

    @pytest.mark.asyncio
    async def test_unread_alert_suppresses_next_day(self, db_session, tenant_id, today, make_contract):
        make_contract(days_until=-1)
        checker = _checker(ContractExpirationChecker, db_session)

        await checker.run(tenant_id, today=today)
        assert await checker.run(tenant_id, today=today + timedelta(days=1)) == 0

    @pytest.mark.asyncio
    async def test_read_alert_allows_new_one(self, db_session, tenant_id, today, make_contract):
        make_contract(days_until=3)
        checker = _checker(ContractExpirationChecker, db_session)

        await checker.run(tenant_id, today=today)
        for notification in _notifications(db_session, tenant_id):
            notification.read = True
        db_session.flush()

        assert await checker.run(tenant_id, today=today + timedelta(days=1)) == 1

    @pytest.mark.parametrize("days_until,priority", [
        (0, NotificationPriority.URGENT),
        (1, NotificationPriority.HIGH),
        (7, NotificationPriority.HIGH),
        (8, NotificationPriority.NORMAL),
        (30, NotificationPriority.NORMAL),
    ])
    def test_classification(self, db_session, today, days_until, priority):
        checker = _checker(ContractExpirationChecker, db_session)
        record = SimpleNamespace(
            id="c1", name="Lease", reference=None, display_name="Lease",
            end_date=today + timedelta(days=days_until), status="active",
        )

        candidate = checker.propose(record, today)

        assert candidate.priority == priority

    def test_beyond_window_is_not_proposed(self, db_session, today):
        checker = _checker(ContractExpirationChecker, db_session)
        record = SimpleNamespace(
            id="c1", name="Lease", display_name="Lease",
            end_date=today + timedelta(days=31), status="active",
        )
        assert checker.propose(record, today) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["expired", "cancelled", "EXPIRED"])
    async def test_closed_contracts_are_skipped(self, db_session, tenant_id, today, make_contract, status):
        make_contract(days_until=-5, status=status)
        checker = _checker(ContractExpirationChecker, db_session)

        assert await checker.run(tenant_id, today=today) == 0

    @pytest.mark.asyncio
    async def test_contract_without_end_date_is_skipped(self, db_session, tenant_id, today, make_contract):
        contract = make_contract(days_until=0)
        contract.end_date = None
        db_session.flush()

        assert await _checker(ContractExpirationChecker, db_session).run(tenant_id, today=today) == 0

    @pytest.mark.asyncio
    async def test_other_tenants_records_are_ignored(self, db_session, tenant_id, today, make_contract):
        make_contract(days_until=2, tenant_id="another_company")

        assert await _checker(ContractExpirationChecker, db_session).run(tenant_id, today=today) == 0


# =============================================================================
# Invoices
# =============================================================================


class TestOverdueInvoiceChecker:

    @pytest.mark.asyncio
    async def test_seven_day_renotification_cadence(self, db_session, tenant_id, today, make_invoice):
        make_invoice(days_overdue=14)
        checker = _checker(OverdueInvoiceChecker, db_session)

        day_14 = await checker.run(tenant_id, today=today)
        day_15 = await checker.run(tenant_id, today=today + timedelta(days=1))
        day_21 = await checker.run(tenant_id, today=today + timedelta(days=7))

        assert (day_14, day_15, day_21) == (1, 0, 1)
        notifications = sorted(
            _notifications(db_session, tenant_id),
            key=lambda n: n.extra_metadata["days_overdue"],
        )
        assert [n.priority for n in notifications] == ["normal", "high"]

    @pytest.mark.asyncio
    async def test_first_week_renotifies_daily_but_once_per_day(
        self, db_session, tenant_id, today, make_invoice
    ):
        make_invoice(days_overdue=2)
        checker = _checker(OverdueInvoiceChecker, db_session)

        assert await checker.run(tenant_id, today=today) == 1
        assert await checker.run(tenant_id, today=today) == 0
        assert await checker.run(tenant_id, today=today + timedelta(days=1)) == 1

    @pytest.mark.parametrize("days_overdue,priority", [
        (1, NotificationPriority.NORMAL),
        (14, NotificationPriority.NORMAL),
        (15, NotificationPriority.HIGH),
        (30, NotificationPriority.HIGH),
        (31, NotificationPriority.URGENT),
        (400, NotificationPriority.URGENT),
    ])
    def test_classification(self, db_session, days_overdue, priority):
        assert _checker(OverdueInvoiceChecker, db_session).classify(days_overdue) == priority

    @pytest.mark.asyncio
    async def test_invoice_due_today_is_not_overdue(self, db_session, tenant_id, today, make_invoice):
        make_invoice(days_overdue=0)
        assert await _checker(OverdueInvoiceChecker, db_session).run(tenant_id, today=today) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["paid", "cancelled", "expired"])
    async def test_settled_invoices_are_skipped(self, db_session, tenant_id, today, make_invoice, status):
        make_invoice(days_overdue=20, status=status)
        assert await _checker(OverdueInvoiceChecker, db_session).run(tenant_id, today=today) == 0

    @pytest.mark.asyncio
    async def test_message_and_metadata(self, db_session, tenant_id, today, make_invoice):
        invoice = make_invoice(days_overdue=3, number="INV-042")

        await _checker(OverdueInvoiceChecker, db_session).run(tenant_id, today=today)

        [notification] = _notifications(db_session, tenant_id)
        assert notification.title == "Overdue Invoice: INV-042"
        assert notification.message == "Invoice INV-042 for €1,250.00 is 3 days overdue."
        assert notification.action_url == f"/modules/invoices?invoice={invoice.id}"
        assert notification.extra_metadata["days_overdue"] == 3
        assert notification.extra_metadata["invoice_number"] == "INV-042"


# =============================================================================
# Subscriptions
# =============================================================================


class TestSubscriptionRenewalChecker:

    @pytest.mark.asyncio
    async def test_eight_days_out_is_not_proposed(self, db_session, tenant_id, today, make_subscription):
        make_subscription(days_until=8)
        assert await _checker(SubscriptionRenewalChecker, db_session).run(tenant_id, today=today) == 0

    @pytest.mark.asyncio
    async def test_seven_days_out_is_normal(self, db_session, tenant_id, today, make_subscription):
        make_subscription(days_until=7)

        created = await _checker(SubscriptionRenewalChecker, db_session).run(tenant_id, today=today)

        assert created == 1
        [notification] = _notifications(db_session, tenant_id)
        assert notification.priority == "normal"
        assert notification.extra_metadata["days_until_renewal"] == 7

    @pytest.mark.parametrize("days_until,priority", [
        (0, NotificationPriority.HIGH),
        (1, NotificationPriority.HIGH),
        (2, NotificationPriority.NORMAL),
    ])
    def test_classification(self, db_session, today, days_until, priority):
        record = SimpleNamespace(
            id="s1", plan_name="Suite", display_name="Suite", amount=10,
            next_billing_date=today + timedelta(days=days_until), status="active", auto_renew=True,
        )
        candidate = _checker(SubscriptionRenewalChecker, db_session).propose(record, today)
        assert candidate.priority == priority

    def test_past_billing_date_is_skipped(self, db_session, today):
        record = SimpleNamespace(
            id="s1", plan_name="Suite", display_name="Suite", amount=10,
            next_billing_date=today - timedelta(days=1), status="active", auto_renew=True,
        )
        assert _checker(SubscriptionRenewalChecker, db_session).propose(record, today) is None

    @pytest.mark.asyncio
    async def test_manual_renewal_is_skipped(self, db_session, tenant_id, today, make_subscription):
        make_subscription(days_until=1, auto_renew=False)
        assert await _checker(SubscriptionRenewalChecker, db_session).run(tenant_id, today=today) == 0

    @pytest.mark.asyncio
    async def test_inactive_subscription_is_skipped(self, db_session, tenant_id, today, make_subscription):
        make_subscription(days_until=1, status="paused")
        assert await _checker(SubscriptionRenewalChecker, db_session).run(tenant_id, today=today) == 0
