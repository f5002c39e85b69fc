"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from cashless_refunds.api.dependencies import get_authenticator
from cashless_refunds.api.main import create_app
from cashless_refunds.domain.authentication import OperatorAuthenticator
from cashless_refunds.domain.models import RawCandidate
from cashless_refunds.infrastructure.database.models import Base, Card, RefundRequest
from cashless_refunds.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_API_KEY = "test-admin-key"
PAYER_IBAN = "BE68539007547034"

# Valid Belgian IBANs (MOD-97 remainder 1)
CREDITOR_IBANS = [
    "BE43000000000101",
    "BE32000000000202",
    "BE21000000000303",
    "BE10000000000404",
    "BE96000000000505",
    "BE85000000000606",
    "BE74000000000707",
    "BE63000000000808",
]


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
def other_session(db: Session) -> Generator[Session, None, None]:
    """Second session on the same database, standing in for a concurrent request"""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database and a known admin key"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_authenticator] = lambda: OperatorAuthenticator([TEST_API_KEY])
    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {TEST_API_KEY}"}


@pytest.fixture
def payer_config() -> dict:
    """Payer configuration accepted by the document generator"""
    return {"name": "Acme", "account": PAYER_IBAN, "country": "BE"}


@pytest.fixture
def seed_refund(db: Session) -> Callable[..., RefundRequest]:
    """Insert a refund request and, when a balance is given, its card"""
    base_time = datetime(2026, 7, 1, 12, 0, 0)

    def _seed(
        refund_id: int,
        balance: Optional[Decimal] = Decimal("25.00"),
        account: Optional[str] = None,
        card_id: Optional[str] = None,
        first_name: Optional[str] = "Jean",
        last_name: Optional[str] = "Dupont",
        email: Optional[str] = "jean.dupont@example.com",
        exported: bool = False,
    ) -> RefundRequest:
        card_id = card_id if card_id is not None else f"CARD{refund_id:04d}"
        if balance is not None and db.get(Card, card_id) is None:
            db.add(Card(id=card_id, amount=balance))
        refund = RefundRequest(
            id=refund_id,
            created_at=base_time + timedelta(minutes=refund_id),
            first_name=first_name,
            last_name=last_name,
            account=account if account is not None else CREDITOR_IBANS[refund_id % len(CREDITOR_IBANS)],
            email=email,
            id_card=card_id,
            file_generated=exported,
        )
        db.add(refund)
        db.commit()
        return refund

    return _seed


@pytest.fixture
def make_candidate() -> Callable[..., RawCandidate]:
    """Build raw candidates for domain tests"""

    def _make(refund_id: int, **overrides) -> RawCandidate:
        values = dict(
            id=refund_id,
            created_at=datetime(2026, 7, 1, 12, 0, 0),
            first_name="Jean",
            last_name="Dupont",
            account=CREDITOR_IBANS[refund_id % len(CREDITOR_IBANS)],
            email="jean.dupont@example.com",
            card_id=f"CARD{refund_id:04d}",
        )
        values.update(overrides)
        return RawCandidate(**values)

    return _make
