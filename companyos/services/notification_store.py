"""
Notification store for the expiration monitor.

Tenant-scoped query/create over the notifications table. create() is
idempotent per (tenant, type, record, day): a second create for the same key
returns None instead of writing a duplicate.

SECURITY: tenant_id from JWT only, never from client input.
"""

import logging
from datetime import date
from typing import List, Optional, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from companyos.models.notification import (
    Notification,
    NotificationCandidate,
    build_idempotency_key,
)
from companyos.platform.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class NotificationStore(Protocol):
    """Contract consumed by the expiration checkers."""

    def query(
        self,
        tenant_id: str,
        type: Optional[str] = None,
        record_id: Optional[str] = None,
        unread_only: bool = True,
    ) -> List[Notification]:
        ...

    def create(
        self,
        tenant_id: str,
        candidate: NotificationCandidate,
        user_id: Optional[str] = None,
        bucket: Optional[date] = None,
    ) -> Optional[str]:
        ...


class SqlNotificationStore:
    """SQLAlchemy implementation of NotificationStore."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def query(
        self,
        tenant_id: str,
        type: Optional[str] = None,
        record_id: Optional[str] = None,
        unread_only: bool = True,
    ) -> List[Notification]:
        """
        List notifications for a tenant.

        Raises:
            StoreUnavailable: If the database query fails
        """
        if not tenant_id:
            raise ValueError("tenant_id is required")
        try:
            q = self.db.query(Notification).filter(Notification.tenant_id == tenant_id)
            if type is not None:
                q = q.filter(Notification.type == getattr(type, "value", type))
            if record_id is not None:
                q = q.filter(Notification.record_id == str(record_id))
            if unread_only:
                q = q.filter(Notification.read.is_(False))
            return q.all()
        except SQLAlchemyError as e:
            logger.error(
                "Notification query failed",
                extra={"tenant_id": tenant_id, "type": type, "error": str(e)},
            )
            raise StoreUnavailable("notifications.query", e) from e

    def _exists(self, idempotency_key: str) -> bool:
        return (
            self.db.query(Notification.id)
            .filter(Notification.idempotency_key == idempotency_key)
            .first()
            is not None
        )

    def create(
        self,
        tenant_id: str,
        candidate: NotificationCandidate,
        user_id: Optional[str] = None,
        bucket: Optional[date] = None,
    ) -> Optional[str]:
        """
        Persist an unread notification.

        Returns:
            The new notification id, or None if the idempotency key already
            exists (duplicate collapsed)

        Raises:
            StoreUnavailable: If the write fails for any other reason
        """
        if not tenant_id:
            raise ValueError("tenant_id is required")

        idempotency_key = build_idempotency_key(
            tenant_id, candidate.type.value, candidate.record_id, bucket
        )
        try:
            if self._exists(idempotency_key):
                logger.info(
                    "Duplicate notification skipped",
                    extra={"tenant_id": tenant_id, "idempotency_key": idempotency_key},
                )
                return None

            notification = Notification.from_candidate(
                tenant_id, candidate, user_id=user_id, bucket=bucket
            )
            # Savepoint so a concurrent duplicate only rolls back this insert
            with self.db.begin_nested():
                self.db.add(notification)
                self.db.flush()
        except IntegrityError:
            logger.info(
                "Duplicate notification collapsed at write time",
                extra={"tenant_id": tenant_id, "idempotency_key": idempotency_key},
            )
            return None
        except SQLAlchemyError as e:
            logger.error(
                "Notification create failed",
                extra={"tenant_id": tenant_id, "type": candidate.type.value, "error": str(e)},
            )
            raise StoreUnavailable("notifications.create", e) from e

        logger.info(
            "Notification created",
            extra={
                "tenant_id": tenant_id,
                "notification_id": notification.id,
                "type": candidate.type.value,
                "record_id": candidate.record_id,
                "priority": candidate.priority.value,
                "user_id": user_id,
            },
        )
        return notification.id
