import os

# Must be set before ``escrow.database`` is imported anywhere
os.environ.setdefault("PYTEST_RUN", "1")

from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Load environment variables for tests
load_dotenv(Path(__file__).resolve().parents[1] / ".env.test")

from escrow.models import AdminUser, Booking, BookingStatus, User, UserType  # noqa: E402
from escrow.models.base import BaseModel  # noqa: E402
from escrow.utils.clock import FrozenClock  # noqa: E402

NOW = datetime(2030, 1, 1, 12, 0, 0)


@pytest.fixture
def Session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    BaseModel.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def db(Session):
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def parties(db):
    client = User(email="client@test.com", first_name="Ama", last_name="Client", user_type=UserType.CLIENT)
    provider = User(
        email="provider@test.com",
        first_name="Kofi",
        last_name="Provider",
        user_type=UserType.SERVICE_PROVIDER,
    )
    admin = User(email="admin@test.com", first_name="Ops", last_name="Admin", user_type=UserType.CLIENT)
    stranger = User(email="other@test.com", first_name="O", last_name="Ther", user_type=UserType.CLIENT)
    db.add_all([client, provider, admin, stranger])
    db.commit()
    db.add(AdminUser(user_id=admin.id, role="admin"))
    db.commit()
    for user in (client, provider, admin, stranger):
        db.refresh(user)
    return SimpleNamespace(client=client, provider=provider, admin=admin, stranger=stranger)


@pytest.fixture
def make_booking(db, parties):
    """Create a paid booking awaiting client confirmation whose deadline has passed."""

    def _make(**overrides) -> Booking:
        values = dict(
            client_id=parties.client.id,
            provider_id=parties.provider.id,
            title="Wedding DJ set",
            status=BookingStatus.AWAITING_CLIENT_CONFIRMATION,
            total_amount=Decimal("100.00"),
            currency="GHS",
            is_paid=True,
            escrow_released=False,
            completed_at=NOW - timedelta(hours=49),
            client_confirm_deadline=NOW - timedelta(hours=1),
        )
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make
