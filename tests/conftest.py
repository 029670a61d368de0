"""
Pytest configuration and shared fixtures
"""
import os

# Settings are read at import time, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-length-0123456789"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "admin-password-123"
os.environ["ASAAS_MOCK_MODE"] = "true"
os.environ["ASAAS_WEBHOOK_TOKEN"] = "test-webhook-token"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["CSRF_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("REDIS_URL", None)
os.environ.pop("ADMIN_SESSION_SECRET", None)
os.environ.pop("DEV_COUPON_ADMIN_EMAILS", None)

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import email_service  # noqa: E402
from app.auth import create_admin_token, create_session_token  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.domain.catalog.seed import seed_catalog  # noqa: E402
from app.domain.scheduling.business_hours import to_business_tz, utcnow  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Room, User  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
CRON_SECRET = "test-cron-secret"
WEBHOOK_TOKEN = "test-webhook-token"
VALID_CPF = "52998224725"


@pytest.fixture(scope="function")
def db_engine():
    """In-memory database engine"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Database session shared by the test and the app"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Test client with get_db pointed at the test session"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Capture outgoing emails instead of calling Resend"""
    sent = []

    async def fake_send_email(to, subject, mjml_content, from_address=None):
        sent.append({"to": to, "subject": subject})
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return sent


# ============== Catalog ==============

@pytest.fixture
def rooms(db_session):
    """Seeded rooms keyed by slug"""
    seed_catalog(db_session)
    return {room.slug: room for room in db_session.query(Room).all()}


# ============== Dates ==============

@pytest.fixture
def booking_day():
    """A weekday (São Paulo) between 3 and 7 days ahead"""
    day = to_business_tz(utcnow()).date() + timedelta(days=3)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


@pytest.fixture
def saturday():
    """Next Saturday at least 3 days ahead"""
    day = to_business_tz(utcnow()).date() + timedelta(days=3)
    while day.weekday() != 5:
        day += timedelta(days=1)
    return day


@pytest.fixture
def local_iso():
    """Naive ISO string builder, read by the API as São Paulo wall-clock time"""
    def build(day: date, hour: int) -> str:
        return f"{day.isoformat()}T{hour:02d}:00:00"
    return build


# ============== Authentication ==============

@pytest.fixture
def customer(db_session):
    """Registered customer"""
    user = User(
        name="Maria Silva",
        email="maria@example.com",
        phone="11987654321",
        cpf=VALID_CPF,
        role="CUSTOMER",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {create_session_token(customer)}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_admin_token(ADMIN_EMAIL)}"}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}
