"""
Pytest fixtures for the stock ledger test suite.

Provides:
- Structured logging setup and JSON log capture
- In-memory SQLite engine with all tables (one per test)
- Deterministic clock, ledger, catalog and location fixtures
- An event factory for engine tests that never touch the database

Environment Variables:
- DATABASE_URL: optional URL for the file/PostgreSQL-backed concurrency
  tests; defaults to a SQLite file under the test's tmp_path.
"""

import itertools
import json
import logging
from datetime import date, datetime, timedelta, timezone
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stock_kernel.db.engine import create_tables, drop_tables, session_scope
from stock_kernel.domain.catalog import (
    InMemoryLocationDirectory,
    InMemoryProductCatalog,
    LocationRef,
    ProductInfo,
)
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.dtos import StockMovementEvent
from stock_kernel.domain.values import LocationKind, MovementReason
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.models.catalog import Location, Product
from stock_kernel.services.ledger_service import MovementLedger

FIXED_NOW = datetime(2024, 5, 15, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
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
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.append(draft)
            logs = captured_logs()
            assert any(r["message"] == "movement_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database with every table created."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Clock / ledger
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def ledger(session_factory, clock):
    return MovementLedger(session_factory, clock=clock, batch_size=2)


# =============================================================================
# Catalog
# =============================================================================

PRODUCT_A = ProductInfo(
    product_ref="PRODUCT-A",
    unit_code="00000000000001",
    display_code="STENT-3x18",
    owner_client="CLIENT-MEDCO",
    description="Coronary stent 3.0 x 18 mm",
)
PRODUCT_B = ProductInfo(
    product_ref="PRODUCT-B",
    unit_code="04987654321098",
    display_code="BALLOON-2x12",
    owner_client="CLIENT-MEDCO",
)

WAREHOUSE = LocationRef("WAREHOUSE", "Central Warehouse", LocationKind.CENTRAL_WAREHOUSE)
HOSPITAL_X = LocationRef("HOSPITAL-X", "Hospital X", LocationKind.HOSPITAL)
HOSPITAL_Y = LocationRef("HOSPITAL-Y", "Hospital Y", LocationKind.HOSPITAL)
CLIENT_MEDCO = LocationRef("CLIENT-MEDCO", "MedCo Supplies", LocationKind.SUPPLIER)


@pytest.fixture
def products():
    return (PRODUCT_A, PRODUCT_B)


@pytest.fixture
def catalog(products):
    return InMemoryProductCatalog(products)


@pytest.fixture
def location_refs():
    return (WAREHOUSE, HOSPITAL_X, HOSPITAL_Y, CLIENT_MEDCO)


@pytest.fixture
def locations(location_refs):
    return InMemoryLocationDirectory(location_refs)


@pytest.fixture
def seeded_catalog(session_factory, products, location_refs):
    """Products and locations inserted into the catalog tables."""
    with session_scope(session_factory) as s:
        for p in products:
            s.add(
                Product(
                    product_ref=p.product_ref,
                    unit_code=p.unit_code,
                    display_code=p.display_code,
                    owner_client=p.owner_client,
                    description=p.description,
                )
            )
        for loc in location_refs:
            s.add(
                Location(
                    location_id=loc.location_id,
                    display_name=loc.display_name,
                    kind=loc.kind.value,
                )
            )
    return session_factory


# =============================================================================
# Event factory for pure engine tests
# =============================================================================


@pytest.fixture
def make_event():
    """
    Build StockMovementEvent values without a ledger.

    ``recorded_at`` defaults to one minute per seq after 2024-01-01 12:00 UTC;
    ``business_date`` is the effective date when given, else the recorded day.
    """
    counter = itertools.count(1)

    def _make(
        *,
        product_ref: str = "PRODUCT-A",
        lot_number: str = "LOT1",
        quantity: int = 1,
        reason: MovementReason = MovementReason.PURCHASE,
        source: str | None = None,
        dest: str | None = None,
        expiry: date | None = date(2025, 12, 31),
        effective: date | None = None,
        recorded_at: datetime | None = None,
    ) -> StockMovementEvent:
        seq = next(counter)
        recorded = recorded_at or (
            datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc) + timedelta(minutes=seq)
        )
        return StockMovementEvent(
            event_id=uuid4(),
            seq=seq,
            recorded_at=recorded,
            business_date=effective or recorded.date(),
            product_ref=product_ref,
            lot_number=lot_number,
            quantity=quantity,
            reason=reason,
            source_location=source,
            dest_location=dest,
            expiry_date=expiry,
            effective_date=effective,
        )

    return _make
