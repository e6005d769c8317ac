import os

# Must be set before trackroster is imported: settings and the engine are built at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_123"
os.environ["STRIPE_PRICE_ID"] = "price_test_123"
os.environ["MAILGUN_API_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["SENDGRID_API_KEY"] = ""

from types import SimpleNamespace

import pytest
import stripe
from fastapi.testclient import TestClient

from trackroster.database import Base, SessionLocal, engine
from trackroster.main import app
from trackroster.models.team import Team, TeamMember, TeamRole
from trackroster.models.user import User
from trackroster.services import verification
from trackroster.services.auth import create_access_token, get_password_hash


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def outbox(monkeypatch):
    """Captures verification emails instead of sending them."""
    sent = []

    def fake_send(to_email, code, full_name=None):
        sent.append(SimpleNamespace(to=to_email, code=code, full_name=full_name))
        return True

    monkeypatch.setattr(verification, "send_verification_email", fake_send)
    return sent


@pytest.fixture
def stripe_sessions(monkeypatch):
    """Records stripe.checkout.Session.create calls and returns a fake session."""
    calls = []

    def fake_create(**params):
        calls.append(params)
        sid = f"cs_test_{len(calls)}"
        return SimpleNamespace(id=sid, url=f"https://checkout.stripe.com/c/pay/{sid}")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    return calls


def make_user(db, email="coach@x.com", password="pw-123456", verified=True, full_name="Pat Coach"):
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        email_verified=verified,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_team(db, slug="eagles", owner=None, role=TeamRole.coach, **kwargs):
    team = Team(
        name=kwargs.pop("name", "Eagles"),
        school_name=kwargs.pop("school_name", "Central High"),
        slug=slug,
        primary_color="#1e3a5f",
        secondary_color="#c5a900",
        created_by=owner.id if owner else None,
        **kwargs,
    )
    db.add(team)
    db.flush()
    if owner is not None:
        db.add(TeamMember(team_id=team.id, user_id=owner.id, role=role))
    db.commit()
    db.refresh(team)
    return team


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}
