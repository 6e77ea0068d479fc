"""Shared fixtures: in-memory database, API client, user/job factories."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"

import hashlib  # noqa: E402
import hmac  # noqa: E402
import itertools  # noqa: E402
import time  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from staffshield.auth.security import create_access_token, get_password_hash  # noqa: E402
from staffshield.db import Base, get_db  # noqa: E402
from staffshield.main import app  # noqa: E402
from staffshield.models.models import PROFILE_MODELS, Job, User  # noqa: E402
from staffshield.services import realtime  # noqa: E402
from staffshield.services.payments import PaymentIntent, StripeGateway, get_gateway  # noqa: E402


WEBHOOK_SECRET = "whsec_test"
_seq = itertools.count(1)


class FakeGateway(StripeGateway):
    """Real webhook verification, canned intents instead of network calls."""

    def __init__(self):
        super().__init__(secret_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET)
        self.created = []

    def create_payment_intent(self, amount_cents, currency, metadata):
        n = len(self.created) + 1
        self.created.append({"amount": amount_cents, "currency": currency, "metadata": metadata})
        return PaymentIntent(id=f"pi_test_{n}", client_secret=f"pi_test_{n}_secret")


class RecordingHub:
    def __init__(self):
        self.events = []

    async def emit(self, room, event, payload):
        self.events.append((room, event, payload))

    def named(self, event):
        return [(room, payload) for room, ev, payload in self.events if ev == event]


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, gateway):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def events(monkeypatch):
    recorder = RecordingHub()
    monkeypatch.setattr(realtime, "hub", recorder)
    return recorder


@pytest.fixture
def make_user(db):
    def _make(role="client", password="password123", is_active=True, **profile_fields):
        n = next(_seq)
        user = User(
            email=f"{role}{n}@example.com",
            password_hash=get_password_hash(password),
            role=role,
            first_name=role.capitalize(),
            last_name=f"User{n}",
            is_active=is_active,
        )
        db.add(user)
        db.flush()
        model = PROFILE_MODELS.get(role)
        if model is not None:
            if role == "agent":
                profile_fields.setdefault("background_check_status", "approved")
                profile_fields.setdefault("availability_status", "available")
            db.add(model(user_id=user.id, **profile_fields))
        db.commit()
        return user

    return _make


@pytest.fixture
def make_job(db):
    def _make(client_user, start=None, hours=4, **fields):
        start = start or datetime.utcnow() + timedelta(days=2)
        fields.setdefault("title", "Event security")
        fields.setdefault("description", "Door and perimeter")
        fields.setdefault("location_address", "1 Main St")
        fields.setdefault("hourly_rate", 50)
        fields.setdefault("agents_needed", 2)
        job = Job(
            client_id=client_user.id,
            start_date=start,
            end_date=start + timedelta(hours=hours),
            **fields,
        )
        db.add(job)
        db.commit()
        return job

    return _make


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def headers():
    return auth


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs webhooks."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"
