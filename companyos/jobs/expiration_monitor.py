"""
Expiration monitor job.

Runs the expiration checks for every tenant that has contracts, invoices or
subscriptions. Runs once, or forever on the configured interval (default
every 60 minutes).

Usage:
    python -m companyos.jobs.expiration_monitor            # once
    python -m companyos.jobs.expiration_monitor --loop     # every interval_minutes

Deployed as a cron job or a long-running worker.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import select, union
from sqlalchemy.orm import Session

from companyos.config.expiration_monitor import get_expiration_config
from companyos.database.session import session_scope
from companyos.models.business_records import Contract, Invoice, Subscription
from companyos.services.expiration_orchestrator import run_expiration_checks

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Tenants fetched per page; the job pages until every tenant is visited
TENANT_BATCH_SIZE = 500


class MonitorStats:
    """Track expiration monitor run statistics."""

    def __init__(self):
        self.tenants_processed = 0
        self.tenants_skipped = 0
        self.contracts = 0
        self.invoices = 0
        self.subscriptions = 0
        self.start_time = datetime.now(timezone.utc)

    @property
    def notifications_created(self) -> int:
        return self.contracts + self.invoices + self.subscriptions

    def to_dict(self) -> dict:
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        return {
            "tenants_processed": self.tenants_processed,
            "tenants_skipped": self.tenants_skipped,
            "contracts": self.contracts,
            "invoices": self.invoices,
            "subscriptions": self.subscriptions,
            "notifications_created": self.notifications_created,
            "duration_seconds": duration,
        }


def list_tenant_ids(
    session: Session,
    limit: int = TENANT_BATCH_SIZE,
    after: Optional[str] = None,
) -> list[str]:
    """One page of distinct tenants owning a scanned record, ordered by id."""
    tenants = union(
        select(Contract.tenant_id),
        select(Invoice.tenant_id),
        select(Subscription.tenant_id),
    ).subquery()
    query = session.query(tenants.c.tenant_id)
    if after is not None:
        query = query.filter(tenants.c.tenant_id > after)
    rows = query.order_by(tenants.c.tenant_id).limit(limit).all()
    return [row[0] for row in rows]


def iter_tenant_batches(session: Session, batch_size: int = TENANT_BATCH_SIZE) -> Iterator[list[str]]:
    """Yield every tenant id, page by page, keyed on the last id seen."""
    after = None
    while True:
        batch = list_tenant_ids(session, limit=batch_size, after=after)
        if not batch:
            return
        yield batch
        if len(batch) < batch_size:
            return
        after = batch[-1]


async def run_monitor(
    session: Session,
    tenant_ids: Optional[list[str]] = None,
    batch_size: int = TENANT_BATCH_SIZE,
) -> dict:
    """
    Run the expiration checks for each tenant.

    Without explicit tenant_ids every tenant is visited, batch_size at a time.

    Returns:
        Statistics dictionary with job results
    """
    logger.info("Starting expiration monitor run")
    stats = MonitorStats()

    batches = [tenant_ids] if tenant_ids is not None else iter_tenant_batches(session, batch_size)

    for batch in batches:
        logger.info("Checking tenant batch", extra={"tenant_count": len(batch)})
        for tenant_id in batch:
            result = await run_expiration_checks(session, tenant_id)
            if result.skipped:
                stats.tenants_skipped += 1
                continue
            stats.tenants_processed += 1
            stats.contracts += result.contracts
            stats.invoices += result.invoices
            stats.subscriptions += result.subscriptions

    summary = stats.to_dict()
    logger.info("Expiration monitor run completed", extra=summary)
    return summary


async def run_once() -> dict:
    with session_scope() as session:
        return await run_monitor(session)


async def run_forever(interval_minutes: Optional[int] = None) -> None:
    """Run the monitor on a fixed interval until cancelled."""
    interval_minutes = interval_minutes or get_expiration_config().schedule.interval_minutes
    logger.info("Expiration monitor loop started", extra={"interval_minutes": interval_minutes})
    while True:
        try:
            await run_once()
        except Exception as e:
            logger.error("Expiration monitor run failed", extra={"error": str(e)}, exc_info=True)
        await asyncio.sleep(interval_minutes * 60)


def main(argv: Optional[list[str]] = None):
    """Entry point for running the expiration monitor from the command line."""
    parser = argparse.ArgumentParser(description="Run expiration checks for all tenants")
    parser.add_argument("--loop", action="store_true", help="Run forever on the configured interval")
    parser.add_argument("--interval-minutes", type=int, default=None, help="Override the loop interval")
    args = parser.parse_args(argv)

    try:
        if args.loop:
            asyncio.run(run_forever(args.interval_minutes))
        else:
            result = asyncio.run(run_once())
            print(f"Expiration monitor completed: {result}")
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        print(f"Expiration monitor failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
