"""Shared pytest fixtures: in-memory database and ledger object factories."""

import os
from datetime import timedelta

# Keep the module-level engine away from any developer database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from esusu.models import Base, Cycle, CycleStatus, User
from esusu.services.participation_service import BankDetailsInput, ParticipationService
from esusu.utils.dates import add_months, utcnow


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, one connection per thread."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    """Create test database session."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db_session):
    """Factory creating committed users."""
    counter = {"n": 0}

    def _make(full_name: str | None = None, is_administrator: bool = False, is_active: bool = True) -> User:
        counter["n"] += 1
        user = User(
            full_name=full_name or f"Member {counter['n']}",
            phone=f"0803000{counter['n']:04d}",
            email=f"member{counter['n']}@example.com",
            is_administrator=is_administrator,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user) -> User:
    return make_user("Ada Admin", is_administrator=True)


@pytest.fixture
def member(make_user) -> User:
    return make_user("Bola Member")


@pytest.fixture
def make_cycle(db_session):
    """Factory inserting cycles directly, bypassing admin validation.

    Defaults: ACTIVE, 20 slots, started on the 1st two months ago, twelve
    months long, registration still open for a week, payments due on the 28th.
    """

    def _make(**overrides) -> Cycle:
        today = utcnow().date()
        start = add_months(today.replace(day=1), -2, day=1)
        values = {
            "name": "Test Cycle",
            "start_date": start,
            "end_date": add_months(start, 11, day=28),
            "registration_deadline": utcnow() + timedelta(days=7),
            "number_picking_start_date": None,
            "status": CycleStatus.ACTIVE,
            "total_slots": 20,
            "payment_deadline_day": 28,
        }
        values.update(overrides)
        cycle = Cycle(**values)
        db_session.add(cycle)
        db_session.commit()
        return cycle

    return _make


@pytest.fixture
def bank_details() -> BankDetailsInput:
    return BankDetailsInput(bank_name="GTBank", account_number="0123456789", account_name="Bola Member")


@pytest.fixture
def join(db_session, bank_details):
    """Register a user into a cycle and return the participation id."""

    def _join(user: User, cycle: Cycle, tier: str = "PACK_50K") -> int:
        result = ParticipationService(db_session).join_cycle(user.id, cycle.id, tier, bank_details)
        assert result.success, result.message
        return result.value

    return _join
