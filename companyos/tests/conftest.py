"""
Root test configuration and fixtures.

Provides database fixtures that can be used by all tests, plus factories
for the business records scanned by the expiration monitor.
"""

import os
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Generator

import pytest
import yaml
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")


def _get_test_database_url() -> str:
    """Get database URL for tests."""
    database_url = os.getenv("TEST_DATABASE_URL")
    if database_url:
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        return database_url
    return "sqlite:///:memory:"


def _is_postgres() -> bool:
    return _get_test_database_url().startswith("postgresql")


@pytest.fixture(scope="session")
def db_engine():
    """
    Create database engine for tests.

    Uses PostgreSQL if TEST_DATABASE_URL is set, otherwise SQLite in-memory.
    """
    database_url = _get_test_database_url()

    if _is_postgres():
        try:
            engine = create_engine(database_url, pool_pre_ping=True)
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            pytest.skip(f"PostgreSQL not available. Error: {e}")
    else:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        # pysqlite does not emit BEGIN itself; take it over so SAVEPOINT works
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    # Import and create all tables
    from companyos.db_base import Base
    from companyos.models import notification, business_records, ai_policy  # noqa: F401
    from companyos.platform import audit  # noqa: F401 - Audit log model

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """
    Create database session with transaction rollback for test isolation.

    Session commits release savepoints inside the outer transaction, which
    is rolled back after the test completes.
    """
    connection = db_engine.connect()
    transaction = connection.begin()

    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=connection,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def tenant_id() -> str:
    return f"company_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def today() -> date:
    return date(2024, 6, 15)


@pytest.fixture(autouse=True)
def _reset_expiration_config():
    """Each test starts from the packaged expiration_monitor.yml."""
    from companyos.config.expiration_monitor import ExpirationConfigLoader

    ExpirationConfigLoader.reset()
    yield
    ExpirationConfigLoader.reset()


@pytest.fixture
def make_yaml_config(tmp_path):
    """Factory writing a YAML config file and returning its path."""

    def _make(data: dict, name: str = "expiration_monitor.yml") -> str:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return str(path)

    return _make


@pytest.fixture
def make_contract(db_session, tenant_id, today):
    from companyos.models.business_records import Contract

    def _make(days_until: int, status: str = "active", name: str = "Office Lease", **kwargs):
        contract = Contract(
            id=kwargs.pop("id", str(uuid.uuid4())),
            tenant_id=kwargs.pop("tenant_id", tenant_id),
            name=name,
            end_date=today + timedelta(days=days_until),
            status=status,
            **kwargs,
        )
        db_session.add(contract)
        db_session.flush()
        return contract

    return _make


@pytest.fixture
def make_invoice(db_session, tenant_id, today):
    from companyos.models.business_records import Invoice

    def _make(days_overdue: int, status: str = "sent", number: str = "INV-001", **kwargs):
        invoice = Invoice(
            id=kwargs.pop("id", str(uuid.uuid4())),
            tenant_id=kwargs.pop("tenant_id", tenant_id),
            invoice_number=number,
            total=kwargs.pop("total", Decimal("1250.00")),
            due_date=today - timedelta(days=days_overdue),
            status=status,
            **kwargs,
        )
        db_session.add(invoice)
        db_session.flush()
        return invoice

    return _make


@pytest.fixture
def make_subscription(db_session, tenant_id, today):
    from companyos.models.business_records import Subscription

    def _make(days_until: int, status: str = "active", auto_renew: bool = True, **kwargs):
        subscription = Subscription(
            id=kwargs.pop("id", str(uuid.uuid4())),
            tenant_id=kwargs.pop("tenant_id", tenant_id),
            plan_name=kwargs.pop("plan_name", "Design Suite"),
            amount=kwargs.pop("amount", Decimal("49.00")),
            next_billing_date=today + timedelta(days=days_until),
            status=status,
            auto_renew=auto_renew,
            **kwargs,
        )
        db_session.add(subscription)
        db_session.flush()
        return subscription

    return _make
