"""Pytest fixtures for testing"""

import uuid
import pytest
from datetime import datetime, timedelta, timezone
from typing import Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fleet_ledger.api.main import create_app
from fleet_ledger.api.dependencies import get_notification_client
from fleet_ledger.infrastructure.database.models import Base, PlanSelection
from fleet_ledger.infrastructure.database.session import get_db, get_session_factory
from fleet_ledger.domain.models import LedgerEvent, LedgerSnapshot, PlanType, SelectionStatus


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 2024-03-10 09:00 IST
NOW = datetime(2024, 3, 10, 3, 30, tzinfo=timezone.utc)


class RecordingNotifier:
    """Stands in for the dispatcher client; keeps what it was sent"""

    def __init__(self):
        self.events: List[LedgerEvent] = []

    async def send_ledger_event(self, event: LedgerEvent) -> None:
        self.events.append(event)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def client(db: Session, notifier: RecordingNotifier) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    # One session per request; background tasks write through their own
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_notification_client] = lambda: notifier
    return TestClient(app)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_snapshot():
    """Build a ledger snapshot with sensible defaults for a daily plan"""

    def _make(**overrides) -> LedgerSnapshot:
        fields = dict(
            plan_type=PlanType.DAILY,
            status=SelectionStatus.ACTIVE,
            security_deposit_paise=500_000,
            rent_per_day_paise=50_000,
            accidental_cover_paise=0,
            rent_start_date=NOW,
        )
        fields.update(overrides)
        return LedgerSnapshot(**fields)

    return _make


@pytest.fixture
def backdate(db: Session):
    """Move a selection's accrual start back so `days + 1` billable days have elapsed"""

    def _backdate(selection_id: str, days: int) -> None:
        selection = db.get(PlanSelection, uuid.UUID(selection_id))
        selection.rent_start_date = selection.rent_start_date - timedelta(days=days)
        db.commit()

    return _backdate
