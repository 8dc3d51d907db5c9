"""
Audit logging for AI commands and expiration monitoring.

CRITICAL REQUIREMENTS:
- Audit logs MUST be append-only (no UPDATE/DELETE)
- Every AI scope denial and every code-elevated grant MUST write an audit event
- Sensitive detail keys MUST be redacted before persistence
- Failed writes MUST fall back to the secondary logger and NEVER propagate

Audit context (tenant_id, user_id, session_id) is always passed explicitly
by the caller. Nothing is looked up from ambient session state.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, FrozenSet, Optional, Protocol

from sqlalchemy import Column, String, DateTime, Index
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companyos.db_base import Base
from companyos.models.base import JSONType
from companyos.platform.errors import AuditWriteFailure

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("audit.fallback")


class AuditCategory(str, Enum):
    """Top-level grouping of audit events."""
    AI = "ai"
    SETTINGS = "settings"
    SYSTEM = "system"


class AuditAction(str, Enum):
    """
    Enumeration of all auditable actions.

    Add new actions here and register their category in AUDIT_CATEGORIES.
    """
    # AI command events
    AI_BLOCKED = "ai.blocked"
    AI_GRANTED_VIA_CODE = "ai.granted_via_code"
    AI_EXECUTED = "ai.executed"
    AI_ERROR = "ai.error"

    # Settings events
    SETTINGS_AI_POLICY_UPDATED = "settings.ai_policy_updated"

    # Expiration monitoring events
    SYSTEM_EXPIRATION_CHECKS_COMPLETED = "system.expiration_checks_completed"
    SYSTEM_EXPIRATION_CHECK_FAILED = "system.expiration_check_failed"


AUDIT_CATEGORIES: dict[AuditAction, AuditCategory] = {
    AuditAction.AI_BLOCKED: AuditCategory.AI,
    AuditAction.AI_GRANTED_VIA_CODE: AuditCategory.AI,
    AuditAction.AI_EXECUTED: AuditCategory.AI,
    AuditAction.AI_ERROR: AuditCategory.AI,
    AuditAction.SETTINGS_AI_POLICY_UPDATED: AuditCategory.SETTINGS,
    AuditAction.SYSTEM_EXPIRATION_CHECKS_COMPLETED: AuditCategory.SYSTEM,
    AuditAction.SYSTEM_EXPIRATION_CHECK_FAILED: AuditCategory.SYSTEM,
}


def get_category(action: AuditAction) -> AuditCategory:
    """Look up the category of an audit action."""
    return AUDIT_CATEGORIES[action]


class AuditStatus(str, Enum):
    """Outcome of the audited action."""
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class SensitiveDetailRedactor:
    """
    Redacts sensitive keys from audit details before persistence.

    Matching is case-insensitive and ignores "_" so that apiKey, api_key and
    API_KEY are all caught. Nested mappings and lists are processed recursively.
    """

    REDACTED_FIELDS: FrozenSet[str] = frozenset({
        "password",
        "cardnumber",
        "cvv",
        "ssn",
        "apikey",
        "token",
    })

    REDACTION_MARKER = "***REDACTED***"

    @classmethod
    def is_sensitive(cls, key: str) -> bool:
        return str(key).replace("_", "").lower() in cls.REDACTED_FIELDS

    @classmethod
    def redact(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Return a redacted copy; the input is left untouched."""
        return cls._walk(data)

    @classmethod
    def _walk(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: cls.REDACTION_MARKER if cls.is_sensitive(key) else cls._walk(item)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [cls._walk(item) for item in value]
        return value


class AuditLog(Base):
    """
    Audit log database model.

    CRITICAL: This table is append-only. No UPDATE or DELETE operations are allowed.
    tenant_id is NULL for events without company context.
    """
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(255), nullable=True, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="success")
    details = Column(JSONType, nullable=False, default=dict)
    session_id = Column(String(64), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_audit_logs_tenant_timestamp", "tenant_id", "timestamp"),
        Index("ix_audit_logs_tenant_event", "tenant_id", "event_type"),
    )


def generate_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


@dataclass
class AuditEvent:
    """
    Immutable audit event data structure.

    Details are redacted at construction time so that no code path can
    persist or log an unredacted payload.
    """
    event_type: AuditAction
    status: AuditStatus = AuditStatus.SUCCESS
    details: dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    company_id: Optional[str] = None
    session_id: str = field(default_factory=generate_session_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        self.details = SensitiveDetailRedactor.redact(dict(self.details or {}))

    @property
    def category(self) -> AuditCategory:
        return get_category(self.event_type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for database insertion."""
        return {
            "tenant_id": self.company_id,
            "user_id": self.user_id,
            "event_type": self.event_type.value,
            "category": self.category.value,
            "status": self.status.value,
            "details": self.details,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
        }


class AuditStore(Protocol):
    """Append-only destination for audit events. append() never raises."""

    def append(self, tenant_id: Optional[str], event: AuditEvent) -> None:
        ...


def _write_fallback_log(event: AuditEvent, audit_id: str, error_reason: str) -> None:
    """Write audit event to fallback logger when primary store fails."""
    fallback_entry = {
        "event_id": audit_id,
        "tenant_id": event.company_id,
        "user_id": event.user_id,
        "event_type": event.event_type.value,
        "category": event.category.value,
        "status": event.status.value,
        "details": event.details,
        "session_id": event.session_id,
        "timestamp": event.timestamp.isoformat(),
        "fallback_reason": error_reason,
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(fallback_entry, default=str)},
    )


class SqlAuditStore:
    """
    SQLAlchemy-backed audit store.

    On failure, rolls back, writes to the fallback logger and returns.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def _persist(self, audit_id: str, event: AuditEvent) -> AuditLog:
        try:
            audit_log = AuditLog(id=audit_id, **event.to_dict())
            self.db.add(audit_log)
            self.db.commit()
            return audit_log
        except SQLAlchemyError as e:
            raise AuditWriteFailure(
                "Audit write failed",
                details={"error": str(e), "event_type": event.event_type.value},
            ) from e

    def append(self, tenant_id: Optional[str], event: AuditEvent) -> None:
        if tenant_id is not None:
            event.company_id = tenant_id
        audit_id = str(uuid.uuid4())
        try:
            self._persist(audit_id, event)
            logger.info(
                "Audit event recorded",
                extra={
                    "audit_id": audit_id,
                    "tenant_id": event.company_id,
                    "user_id": event.user_id,
                    "event_type": event.event_type.value,
                    "status": event.status.value,
                },
            )
        except Exception as e:
            try:
                self.db.rollback()
            except Exception:
                logger.debug("audit.rollback_failed", exc_info=True)
            # Keep the database error, not the wrapper message
            _write_fallback_log(event, audit_id, str(e.__cause__ or e))


class AuditSink:
    """
    Records audit events for the gateway and the expiration engine.

    This is the failure boundary for the audit trail: decisions are never
    affected by a failed write (fail-open on logging).
    """

    def __init__(self, store: AuditStore, session_id: Optional[str] = None):
        self.store = store
        self.session_id = session_id or generate_session_id()

    def record(
        self,
        action: AuditAction,
        details: Optional[dict[str, Any]] = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Optional[AuditEvent]:
        """
        Build and append an audit event. Never raises.

        Returns:
            The event that was handed to the store, or None if it could not
            be built or appended.
        """
        try:
            event = AuditEvent(
                event_type=action,
                status=status,
                details=details or {},
                user_id=user_id,
                company_id=tenant_id,
                session_id=self.session_id,
            )
        except Exception:
            logger.error(
                "Failed to build audit event",
                extra={"event_type": getattr(action, "value", action), "tenant_id": tenant_id},
                exc_info=True,
            )
            return None

        try:
            self.store.append(tenant_id, event)
        except Exception as e:
            _write_fallback_log(event, str(uuid.uuid4()), str(e))
            return None
        return event
