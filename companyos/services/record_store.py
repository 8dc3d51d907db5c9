"""
Read-only access to the business records scanned by the expiration monitor.
"""

import logging
from typing import Any, List, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companyos.models.business_records import Contract, Invoice, RecordKind, Subscription
from companyos.platform.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_MODELS = {
    RecordKind.CONTRACT: Contract,
    RecordKind.INVOICE: Invoice,
    RecordKind.SUBSCRIPTION: Subscription,
}


class RecordStore(Protocol):
    def list(self, tenant_id: str, kind: RecordKind) -> List[Any]:
        ...


class SqlRecordStore:
    """SQLAlchemy implementation of RecordStore."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def list(self, tenant_id: str, kind: RecordKind) -> List[Any]:
        """
        List all records of a kind for a tenant.

        Raises:
            StoreUnavailable: If the database query fails
        """
        if not tenant_id:
            raise ValueError("tenant_id is required")
        model = _MODELS[RecordKind(kind)]
        try:
            return self.db.query(model).filter(model.tenant_id == tenant_id).all()
        except SQLAlchemyError as e:
            logger.error(
                "Record listing failed",
                extra={"tenant_id": tenant_id, "kind": RecordKind(kind).value, "error": str(e)},
            )
            raise StoreUnavailable(f"records.list.{RecordKind(kind).value}", e) from e
