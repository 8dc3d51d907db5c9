"""
Expiration orchestrator.

Runs the contract, invoice and subscription checkers for one tenant and
aggregates the number of notifications created. A failing checker counts as
zero for its kind and never blocks the others; run_all() never raises.

Usage:
    from companyos.services.expiration_orchestrator import run_expiration_checks

    result = await run_expiration_checks(db, tenant_id, user_id)
    result.to_dict()  # {"contracts": 1, "invoices": 2, "subscriptions": 0, "total": 3}
"""

import logging
import time
from dataclasses import dataclass
from datetime import date
from threading import Lock
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from companyos.config.expiration_monitor import ExpirationMonitorConfig, get_expiration_config
from companyos.platform.audit import AuditAction, AuditSink, AuditStatus, SqlAuditStore
from companyos.platform.errors import CheckerFailure
from companyos.services.expiration_checkers import (
    ContractExpirationChecker,
    ExpirationChecker,
    OverdueInvoiceChecker,
    SubscriptionRenewalChecker,
)
from companyos.services.notification_store import NotificationStore, SqlNotificationStore
from companyos.services.record_store import RecordStore, SqlRecordStore

logger = logging.getLogger(__name__)


@dataclass
class ExpirationRunResult:
    """Counts of notifications created per kind for one run."""
    contracts: int = 0
    invoices: int = 0
    subscriptions: int = 0
    skipped: bool = False

    @property
    def total(self) -> int:
        return self.contracts + self.invoices + self.subscriptions

    def to_dict(self) -> dict[str, int]:
        return {
            "contracts": self.contracts,
            "invoices": self.invoices,
            "subscriptions": self.subscriptions,
            "total": self.total,
        }


class RunThrottle:
    """
    Per-tenant minimum interval between on-demand runs.

    Process-local. The recurring job does not use it. A run that completes
    nothing releases its slot through reset().
    """

    def __init__(self, min_interval_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._last_run: dict[str, float] = {}
        self._lock = Lock()

    def try_acquire(self, tenant_id: str) -> bool:
        """Record a run for the tenant. False if the previous run is too recent."""
        now = self._clock()
        with self._lock:
            last = self._last_run.get(tenant_id)
            if last is not None and now - last < self.min_interval_seconds:
                return False
            self._last_run[tenant_id] = now
            return True

    def reset(self, tenant_id: Optional[str] = None) -> None:
        with self._lock:
            if tenant_id is None:
                self._last_run.clear()
            else:
                self._last_run.pop(tenant_id, None)


class ExpirationOrchestrator:
    """Runs the three expiration checkers and aggregates their counts."""

    def __init__(
        self,
        record_store: RecordStore,
        notification_store: NotificationStore,
        audit_sink: Optional[AuditSink] = None,
        config: Optional[ExpirationMonitorConfig] = None,
        throttle: Optional[RunThrottle] = None,
        db_session: Optional[Session] = None,
    ):
        config = config or get_expiration_config()
        self.audit_sink = audit_sink
        self.throttle = throttle
        self.db = db_session
        self.checkers: dict[str, ExpirationChecker] = {
            "contracts": ContractExpirationChecker(record_store, notification_store, config),
            "invoices": OverdueInvoiceChecker(record_store, notification_store, config),
            "subscriptions": SubscriptionRenewalChecker(record_store, notification_store, config),
        }

    def _record_failure(self, tenant_id: str, user_id: Optional[str], failure: CheckerFailure) -> None:
        if self.audit_sink is not None:
            self.audit_sink.record(
                AuditAction.SYSTEM_EXPIRATION_CHECK_FAILED,
                details={"kind": failure.kind, "error": failure.details.get("error")},
                status=AuditStatus.WARNING,
                tenant_id=tenant_id,
                user_id=user_id,
            )

    def _commit(self, tenant_id: str) -> bool:
        """Commit flushed notifications. False (after rollback) if the commit fails."""
        try:
            self.db.commit()
            return True
        except Exception:
            logger.error(
                "Failed to commit expiration notifications",
                extra={"tenant_id": tenant_id},
                exc_info=True,
            )
            try:
                self.db.rollback()
            except Exception:
                logger.debug("rollback failed", exc_info=True)
            return False

    async def run_all(
        self,
        tenant_id: str,
        user_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ExpirationRunResult:
        """
        Run all checkers sequentially for one tenant. Never raises.

        When the orchestrator owns a session, created notifications are
        committed before any audit event is written, so a failed audit write
        can only roll back its own row.

        Args:
            tenant_id: Tenant to scan
            user_id: Recipient recorded on created notifications (None for tenant-wide)
            today: Override of the current UTC date

        Returns:
            ExpirationRunResult with per-kind counts of persisted notifications
        """
        result = ExpirationRunResult()

        if self.throttle is not None and not self.throttle.try_acquire(tenant_id):
            logger.info(
                "Expiration checks skipped, ran recently",
                extra={"tenant_id": tenant_id},
            )
            result.skipped = True
            return result

        failures: list[CheckerFailure] = []
        for kind, checker in self.checkers.items():
            try:
                count = await checker.run(tenant_id, user_id=user_id, today=today)
            except Exception as e:
                failure = CheckerFailure(kind, e)
                logger.error(
                    "Expiration checker failed",
                    extra={"tenant_id": tenant_id, **failure.details},
                    exc_info=e,
                )
                failures.append(failure)
                count = 0
            setattr(result, kind, count)

        committed = True
        if self.db is not None and result.total:
            committed = self._commit(tenant_id)
            if not committed:
                result = ExpirationRunResult()

        # Nothing ran to completion; let the tenant retry without waiting
        if self.throttle is not None and (not committed or len(failures) == len(self.checkers)):
            self.throttle.reset(tenant_id)

        for failure in failures:
            self._record_failure(tenant_id, user_id, failure)

        logger.info(
            "Expiration checks completed",
            extra={"tenant_id": tenant_id, "user_id": user_id, **result.to_dict()},
        )
        if self.audit_sink is not None:
            self.audit_sink.record(
                AuditAction.SYSTEM_EXPIRATION_CHECKS_COMPLETED,
                details=result.to_dict(),
                status=AuditStatus.SUCCESS,
                tenant_id=tenant_id,
                user_id=user_id,
            )
        return result


def build_orchestrator(
    db_session: Session,
    config: Optional[ExpirationMonitorConfig] = None,
    throttle: Optional[RunThrottle] = None,
) -> ExpirationOrchestrator:
    """Wire the orchestrator to SQLAlchemy-backed stores."""
    return ExpirationOrchestrator(
        record_store=SqlRecordStore(db_session),
        notification_store=SqlNotificationStore(db_session),
        audit_sink=AuditSink(SqlAuditStore(db_session)),
        config=config,
        throttle=throttle,
        db_session=db_session,
    )


async def run_expiration_checks(
    db_session: Session,
    tenant_id: str,
    user_id: Optional[str] = None,
    throttle: Optional[RunThrottle] = None,
    **kwargs: Any,
) -> ExpirationRunResult:
    """
    Run all expiration checks for a tenant and commit created notifications.

    Never raises: a failed commit is logged and reported as zero counts.
    """
    orchestrator = build_orchestrator(db_session, throttle=throttle)
    return await orchestrator.run_all(tenant_id, user_id=user_id, **kwargs)
