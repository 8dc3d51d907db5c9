"""
Audit logging tests.

CRITICAL: These tests verify that audit events are redacted before
persistence, categorized through the explicit lookup table, and that a
failing audit store never propagates to the caller.
"""

import json
import logging
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from companyos.platform.audit import (
    AUDIT_CATEGORIES,
    AuditAction,
    AuditCategory,
    AuditEvent,
    AuditLog,
    AuditSink,
    AuditStatus,
    SensitiveDetailRedactor,
    SqlAuditStore,
    get_category,
)


# ============================================================================
# TEST SUITE: CATEGORY LOOKUP
# ============================================================================

class TestAuditCategories:

    def test_every_action_has_a_category(self):
        assert set(AUDIT_CATEGORIES) == set(AuditAction)

    @pytest.mark.parametrize("action", list(AuditAction))
    def test_category_matches_event_namespace(self, action):
        assert get_category(action).value == action.value.split(".")[0]

    def test_ai_events_are_ai_category(self):
        assert get_category(AuditAction.AI_BLOCKED) == AuditCategory.AI
        assert AuditEvent(event_type=AuditAction.AI_GRANTED_VIA_CODE).category == AuditCategory.AI


# ============================================================================
# TEST SUITE: REDACTION
# ============================================================================

class TestSensitiveDetailRedactor:

    @pytest.mark.parametrize("key", [
        "password", "Password", "api_key", "apiKey", "API_KEY",
        "card_number", "cardNumber", "cvv", "ssn", "token",
    ])
    def test_sensitive_keys_are_redacted(self, key):
        redacted = SensitiveDetailRedactor.redact({key: "secret", "scope": "hr"})

        assert redacted[key] == SensitiveDetailRedactor.REDACTION_MARKER
        assert redacted["scope"] == "hr"

    def test_nested_structures_are_redacted(self):
        details = {
            "payment": {"cardNumber": "4111", "amount": 10},
            "attempts": [{"password": "pw"}, "plain"],
        }

        redacted = SensitiveDetailRedactor.redact(details)

        assert redacted["payment"] == {"cardNumber": "***REDACTED***", "amount": 10}
        assert redacted["attempts"] == [{"password": "***REDACTED***"}, "plain"]

    def test_original_is_not_mutated(self):
        details = {"token": "abc"}
        SensitiveDetailRedactor.redact(details)
        assert details == {"token": "abc"}

    def test_event_details_are_redacted_on_construction(self):
        event = AuditEvent(
            event_type=AuditAction.AI_ERROR,
            details={"email": "a@b.c", "password": "hunter2"},
        )
        assert event.details["password"] == "***REDACTED***"
        assert event.details["email"] == "a@b.c"


# ============================================================================
# TEST SUITE: EVENT STRUCTURE
# ============================================================================

class TestAuditEvent:

    def test_to_dict(self):
        event = AuditEvent(
            event_type=AuditAction.AI_BLOCKED,
            status=AuditStatus.FAILURE,
            details={"reason": "role-restriction"},
            user_id="user_1",
            company_id="company_1",
            session_id="session_abc",
        )

        data = event.to_dict()

        assert data["tenant_id"] == "company_1"
        assert data["event_type"] == "ai.blocked"
        assert data["category"] == "ai"
        assert data["status"] == "failure"
        assert data["session_id"] == "session_abc"

    def test_session_id_generated(self):
        event = AuditEvent(event_type=AuditAction.AI_EXECUTED)
        assert event.session_id.startswith("session_")


# ============================================================================
# TEST SUITE: PERSISTENCE AND FALLBACK
# ============================================================================

class TestSqlAuditStore:

    def test_append_persists_event(self, db_session):
        sink = AuditSink(SqlAuditStore(db_session), session_id="session_test")

        event = sink.record(
            AuditAction.AI_BLOCKED,
            details={"reason": "role-restriction", "token": "t"},
            status=AuditStatus.FAILURE,
            tenant_id="company_1",
            user_id="user_1",
        )

        assert event is not None
        row = db_session.query(AuditLog).filter(AuditLog.tenant_id == "company_1").one()
        assert row.event_type == "ai.blocked"
        assert row.category == "ai"
        assert row.status == "failure"
        assert row.session_id == "session_test"
        assert row.details["token"] == "***REDACTED***"

    def test_system_event_without_tenant(self, db_session):
        AuditSink(SqlAuditStore(db_session)).record(AuditAction.AI_ERROR, user_id="user_2")

        row = db_session.query(AuditLog).filter(AuditLog.user_id == "user_2").one()
        assert row.tenant_id is None

    def test_failed_write_falls_back_and_never_raises(self, caplog):
        session = MagicMock()
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("db down"))
        store = SqlAuditStore(session)

        with caplog.at_level(logging.ERROR, logger="audit.fallback"):
            store.append("company_1", AuditEvent(
                event_type=AuditAction.AI_BLOCKED,
                details={"reason": "code-required"},
            ))

        session.rollback.assert_called_once()
        fallback = [r for r in caplog.records if r.name == "audit.fallback"]
        assert len(fallback) == 1
        entry = json.loads(fallback[0].audit_entry)
        assert entry["event_type"] == "ai.blocked"
        assert entry["tenant_id"] == "company_1"
        assert "db down" in entry["fallback_reason"]

    def test_sink_survives_store_exception(self, caplog):
        store = MagicMock()
        store.append.side_effect = RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="audit.fallback"):
            result = AuditSink(store).record(AuditAction.AI_ERROR, {"error": "x"})

        assert result is None
        assert any(r.name == "audit.fallback" for r in caplog.records)
