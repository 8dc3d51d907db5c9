"""
Tests for the per-tenant AI policy service.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from companyos.constants.scopes import Scope
from companyos.models.ai_policy import AIPolicySettings
from companyos.platform.audit import AuditAction, AuditSink
from companyos.platform.policy_resolver import DEFAULT_POLICY, scopes_for
from companyos.services.ai_policy_service import AIPolicyService, normalize_policy_override


class InMemoryAuditStore:
    def __init__(self):
        self.events = []

    def append(self, tenant_id, event):
        self.events.append((tenant_id, event))


class TestNormalizePolicyOverride:

    def test_roles_lowercased_and_scopes_cleaned(self):
        normalized = normalize_policy_override({
            "roleScopes": {"Employee": ["GLOBAL", "hr", "hr", "payroll"]},
            "requireCodeFor": ["owner", "owner", "nope"],
        })

        assert normalized == {
            "role_scopes": {"employee": ["global", "hr"]},
            "require_code_for": ["owner"],
        }

    def test_require_code_for_omitted_when_absent(self):
        assert "require_code_for" not in normalize_policy_override({"role_scopes": {}})


class TestAIPolicyService:

    def test_requires_tenant(self, db_session):
        with pytest.raises(ValueError):
            AIPolicyService(db_session, "")

    def test_defaults_without_override(self, db_session, tenant_id):
        policy = AIPolicyService(db_session, tenant_id).get_policy()
        assert policy == DEFAULT_POLICY

    def test_save_and_load_round_trip(self, db_session, tenant_id):
        service = AIPolicyService(db_session, tenant_id)
        audit_store = InMemoryAuditStore()

        saved = service.save_policy(
            {"role_scopes": {"employee": ["global", "financial"]}},
            user_id="owner_1",
            audit_sink=AuditSink(audit_store),
        )

        loaded = AIPolicyService(db_session, tenant_id).get_policy()
        assert loaded == saved
        assert scopes_for("employee", loaded) == (Scope.GLOBAL, Scope.FINANCIAL)

        row = db_session.query(AIPolicySettings).filter(AIPolicySettings.tenant_id == tenant_id).one()
        assert row.id == f"{tenant_id}:ai_policy"
        assert row.updated_by == "owner_1"

        [(audit_tenant, event)] = audit_store.events
        assert audit_tenant == tenant_id
        assert event.event_type == AuditAction.SETTINGS_AI_POLICY_UPDATED

    def test_owner_scope_cannot_be_removed_from_owner(self, db_session, tenant_id):
        service = AIPolicyService(db_session, tenant_id)

        policy = service.save_policy({"role_scopes": {"owner": ["global"]}})

        assert Scope.OWNER in scopes_for("owner", policy)
        assert service.get_override()["role_scopes"]["owner"] == ["global", "owner"]

    def test_second_save_replaces_override(self, db_session, tenant_id):
        service = AIPolicyService(db_session, tenant_id)
        service.save_policy({"role_scopes": {"employee": ["global", "hr"]}})
        service.save_policy({"role_scopes": {"contractor": ["global", "hr"]}, "require_code_for": []})

        policy = service.get_policy()

        assert scopes_for("employee", policy) == (Scope.GLOBAL,)
        assert scopes_for("contractor", policy) == (Scope.GLOBAL, Scope.HR)
        assert policy.require_code_for == frozenset()
        assert db_session.query(AIPolicySettings).filter(
            AIPolicySettings.tenant_id == tenant_id
        ).count() == 1

    def test_read_failure_falls_back_to_defaults(self):
        session = MagicMock()
        session.query.side_effect = OperationalError("SELECT", {}, Exception("db down"))

        assert AIPolicyService(session, "company_1").get_policy() == DEFAULT_POLICY

    def test_write_failure_rolls_back_and_raises(self):
        session = MagicMock()
        session.query.return_value.filter.return_value.first.return_value = None
        session.commit.side_effect = OperationalError("UPDATE", {}, Exception("db down"))

        with pytest.raises(OperationalError):
            AIPolicyService(session, "company_1").save_policy({"role_scopes": {}})

        session.rollback.assert_called_once()
