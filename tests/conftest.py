import os

# must be in place before convochat.main builds its module-level app
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

from convochat.clients import VerifiedIdentity, get_generator, get_identity_verifier, get_notifier
from convochat.config import Settings
from convochat.database import Base, build_engine, build_session_factory
from convochat.main import create_app
from convochat.models import Users


class FakeGenerator:
    def __init__(self, reply="Hello from the model"):
        self.reply = reply
        self.error = None
        self.calls = []

    def generate(self, text_parts, inline_file=None):
        self.calls.append((list(text_parts), inline_file))
        if self.error is not None:
            raise self.error
        return self.reply


class FakeVerifier:
    def __init__(self):
        self.identities = {}

    def verify(self, raw_token):
        if raw_token not in self.identities:
            raise ValueError("Token used too late")
        return self.identities[raw_token]


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.error = None

    def send(self, to_email, subject, body):
        if self.error is not None:
            raise self.error
        self.sent.append((to_email, subject, body))


@pytest.fixture
def settings():
    return Settings(
        JWT_SECRET="unit-test-secret",
        DATABASE_URL="sqlite://",
        FRONTEND_URL="http://frontend.test",
        MAX_UPLOAD_BYTES=1024,
    )


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def verifier():
    v = FakeVerifier()
    v.identities["good-google-token"] = VerifiedIdentity(email="Gina@Example.com", subject_id="google-sub-1")
    return v


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def app(settings, generator, verifier, notifier):
    app = create_app(settings)
    app.dependency_overrides[get_generator] = lambda: generator
    app.dependency_overrides[get_identity_verifier] = lambda: verifier
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield app
    app.state.engine.dispose()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def app_session(app):
    """Opens a session on the app's database; use after requests have completed."""
    def _open():
        return app.state.session_factory()
    return _open


@pytest.fixture
def db():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = build_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_user(db):
    def _make(email):
        user = Users(email=email)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def auth_headers(client):
    def _login(email="alice@example.com", password="s3cret-pass"):
        client.post("/api/auth/signup", json={"email": email, "password": password})
        res = client.post("/api/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200
        return {"Authorization": f"Bearer {res.json()['token']}"}
    return _login
