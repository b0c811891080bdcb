"""
Pytest fixtures for the fulfillment reconciliation test suite.

Provides:
- Database sessions with per-test rollback isolation
- Logging fixtures (structured JSON capture)
- Document factories for companies, clients, vehicles, proformas, invoices

Environment Variables:
- DATABASE_URL: database to test against.  Defaults to an in-memory SQLite
  database; set a postgresql:// URL to run the suite on PostgreSQL.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

from fulfillment_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from fulfillment_kernel.domain.clock import DeterministicClock
from fulfillment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fulfillment_kernel.models import (
    Client,
    Company,
    Invoice,
    LineItem,
    Proforma,
    Vehicle,
)

DEFAULT_TEST_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fulfillment_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, session):
            ReconciliationService(session).run()
            logs = captured_logs()
            assert any(r["message"] == "reconciliation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fulfillment_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Opens a dedicated connection with an outer transaction and a session
    that joins it.  SAVEPOINTs taken by the code under test nest inside;
    at teardown the outer transaction is rolled back, undoing everything
    the test wrote.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Document factories
# =============================================================================


class DocumentFactory:
    """Builds document rows directly through the ORM, flushed but uncommitted."""

    def __init__(self, session: Session):
        self.session = session
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _add(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def company(self, name: str | None = None) -> Company:
        n = self._next()
        return self._add(Company(name=name or f"Company {n}", tax_id=f"TAX{n:08d}"))

    def client(self, name: str | None = None) -> Client:
        n = self._next()
        return self._add(Client(name=name or f"Client {n}", identification=f"ID{n:08d}"))

    def vehicle(self, plate: str | None = None) -> Vehicle:
        n = self._next()
        return self._add(Vehicle(plate=plate or f"PLT-{n:04d}", model="Sedan"))

    def vehicles(self, count: int) -> list[Vehicle]:
        return [self.vehicle() for _ in range(count)]

    def _lines(self, vehicles, extra_lines: int, **parent) -> None:
        position = 0
        for vehicle in vehicles:
            position += 1
            self.session.add(
                LineItem(
                    position=position,
                    description=f"Vehicle {vehicle.plate}",
                    quantity=Decimal("1"),
                    unit_price=Decimal("15000.00"),
                    vehicle_id=vehicle.id,
                    **parent,
                )
            )
        for _ in range(extra_lines):
            position += 1
            self.session.add(
                LineItem(
                    position=position,
                    description="Registration fee",
                    quantity=Decimal("1"),
                    unit_price=Decimal("120.00"),
                    **parent,
                )
            )
        self.session.flush()

    def proforma(
        self,
        company: Company,
        client: Client | None,
        vehicles=(),
        *,
        number: str | None = None,
        issued_on: date = date(2025, 1, 1),
        status: str = "pending",
        notes: str | None = None,
        extra_lines: int = 0,
    ) -> Proforma:
        n = self._next()
        proforma = self._add(
            Proforma(
                number=number or f"PRO-{n:05d}",
                company_id=company.id,
                client_id=client.id if client else None,
                issued_on=issued_on,
                status=status,
                notes=notes,
            )
        )
        self._lines(vehicles, extra_lines, proforma_id=proforma.id)
        return proforma

    def invoice(
        self,
        company: Company | None,
        client: Client | None,
        vehicles=(),
        *,
        number: str | None = None,
        issued_on: date = date(2025, 2, 1),
        notes: str | None = None,
        is_active: bool | None = True,
        state: str = "issued",
        proforma: Proforma | None = None,
        proforma_id: UUID | None = None,
        extra_lines: int = 0,
    ) -> Invoice:
        n = self._next()
        invoice = self._add(
            Invoice(
                number=number or f"INV-{n:05d}",
                company_id=company.id if company else None,
                client_id=client.id if client else None,
                issued_on=issued_on,
                notes=notes,
                is_active=is_active,
                state=state,
                proforma_id=proforma.id if proforma else proforma_id,
            )
        )
        self._lines(vehicles, extra_lines, invoice_id=invoice.id)
        return invoice

    def refresh(self, *objs) -> None:
        for obj in objs:
            self.session.refresh(obj)


@pytest.fixture
def docs(session) -> DocumentFactory:
    """Document factory bound to the per-test session."""
    return DocumentFactory(session)


@pytest.fixture
def party(docs):
    """A company and a client that documents are issued between."""
    return docs.company(), docs.client()
