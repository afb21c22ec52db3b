import os, tempfile, uuid
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from main import app, get_rate_limiter
from db import Base, get_db
from notifications import get_mailer
from ratelimit import SlidingWindowRateLimiter
from recaptcha import BotVerificationError, get_bot_verifier
from security import issue_token


class FakeVerifier:
    """Accepts the token "valid"; raises for "boom"."""
    def __init__(self):
        self.calls = []

    def verify(self, token, remote_ip=None):
        self.calls.append(token)
        if token == "boom":
            raise BotVerificationError("connection refused")
        return token == "valid"


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, recipient, kind, data):
        if not recipient or recipient in self.fail_for:
            return False
        self.sent.append((recipient, kind, data["name"]))
        return True


@pytest.fixture(scope="session")
def tmp_db_path():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    return path

@pytest.fixture(scope="session")
def test_engine(tmp_db_path):
    url = f"sqlite:///{tmp_db_path}"
    engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return engine

@pytest.fixture(scope="session")
def TestingSessionLocal(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture(scope="session", autouse=True)
def override_db(TestingSessionLocal):
    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()
    app.dependency_overrides[get_db] = _get_db

@pytest.fixture
def db_session(TestingSessionLocal):
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture
def verifier():
    return FakeVerifier()

@pytest.fixture
def mailer():
    return FakeMailer()

@pytest.fixture
def limiter():
    return SlidingWindowRateLimiter(max_hits=5, window_seconds=15 * 60)

@pytest.fixture
def client(monkeypatch, verifier, mailer, limiter):
    monkeypatch.setattr("config.ADMIN_EMAIL", "admin@mailbox.org")
    app.dependency_overrides[get_bot_verifier] = lambda: verifier
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    yield TestClient(app)
    for dep in (get_bot_verifier, get_mailer, get_rate_limiter):
        app.dependency_overrides.pop(dep, None)

@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {issue_token()}"}

@pytest.fixture
def make_payload():
    """Valid submission body with a unique email unless one is given."""
    def _make(**overrides):
        body = {
            "name": "Jo Ann",
            "gender": "female",
            "nationality": "X",
            "email": f"{uuid.uuid4().hex[:10]}@mailbox.org",
            "phone": "+1 555-1234",
            "address": "1 Rd",
            "message": "Hello there, this is fine.",
            "honeypot": "",
            "recaptchaToken": "valid",
        }
        body.update(overrides)
        return body
    return _make
