import os
from datetime import date, datetime, timedelta

# Must be in place before config/database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AUTH_DISABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import main
import models
from checkin import CheckInWorkflow
from database import get_db
from errors import DependencyError
from issuance import TicketIssuance
from otp_service import OtpIssuer
from registration import RegistrationWorkflow
from retrieval import LoginWorkflow
from ticket_store import TicketStore

TEST_SECRET = "test-secret"
ADMIN_EMAIL = "admin@example.com"

REGISTRATION_DETAILS = {
    "holder_name": "Ada Lovelace",
    "holder_phone": "+15550100",
    "holder_gender": models.Gender.FEMALE.value,
    "holder_dob": date(1995, 12, 10),
    "holder_referral_source": "Friend",
    "holder_referral_details": "",
}


class FakeClock:
    def __init__(self, now: datetime = datetime(2026, 3, 1, 9, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMailer:
    def __init__(self):
        self.otps = []
        self.tickets = []
        self.fail = False

    def send_otp(self, email, otp, name):
        if self.fail:
            raise DependencyError()
        self.otps.append((email, otp, name))

    def send_ticket(self, email, name, pdf, ticket_id):
        if self.fail:
            raise DependencyError()
        self.tickets.append((email, name, pdf, ticket_id))

    def last_otp(self, email):
        codes = [otp for sent_to, otp, _ in self.otps if sent_to == email]
        return codes[-1] if codes else None


class FakePdfRenderer:
    def __init__(self):
        self.rendered = []

    def render_ticket(self, context):
        self.rendered.append(context)
        return b"%PDF-1.4 test ticket"


def make_token(email=ADMIN_EMAIL, email_verified=True, secret=TEST_SECRET, subject="user_123"):
    claims = {"sub": subject, "email": email, "email_verified": email_verified}
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def pdf_renderer():
    return FakePdfRenderer()


@pytest.fixture
def store(db):
    return TicketStore(db)


@pytest.fixture
def otp(store, mailer, clock):
    return OtpIssuer(store, mailer, clock=clock)


@pytest.fixture
def issuance(store, pdf_renderer, mailer):
    return TicketIssuance(store, pdf_renderer, mailer, event_name="Test Event", qr_token_prefix="TEST")


@pytest.fixture
def registration(store, otp, issuance):
    return RegistrationWorkflow(store, otp, issuance)


@pytest.fixture
def login(store, otp):
    return LoginWorkflow(store, otp)


@pytest.fixture
def checkin(store, clock):
    return CheckInWorkflow(store, clock=clock)


@pytest.fixture
def register(registration, mailer):
    """Runs the full signup for an email and returns the verified ticket."""

    def _register(email="ada@example.com", **overrides):
        registration.initiate(email, "Ada")
        registration.verify_email(email, mailer.last_otp(email))
        return registration.complete(email, {**REGISTRATION_DETAILS, **overrides})

    return _register


@pytest.fixture
def client(session_factory, mailer, pdf_renderer, clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[main.get_mailer] = lambda: mailer
    main.app.dependency_overrides[main.get_pdf_renderer] = lambda: pdf_renderer
    main.app.dependency_overrides[main.get_clock] = lambda: clock
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token()}"}
