"""Shared fixtures: in-memory database, authenticated clients and a fake Twilio client."""

import os
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from twilio.base.exceptions import TwilioRestException

# Set test environment variables before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_BACKEND"] = "sql"
os.environ["DOCUMENT_STORE_PATH"] = ""
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SEED_DEMO"] = "false"
os.environ["AUTH_ENABLED"] = "true"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")
for name in (
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_MESSAGING_SERVICE_SID",
    "TWILIO_SENDER_ID",
    "TWILIO_PHONE_NUMBER",
):
    os.environ.pop(name, None)

from config import Settings, get_settings  # noqa: E402

get_settings.cache_clear()

from database import Base, SessionLocal, engine  # noqa: E402
from document_storage import DocumentStorage, reset_document_storage  # noqa: E402
from main import app  # noqa: E402
from sms import SmsSender, get_sms_sender  # noqa: E402
from storage import SqlStorage  # noqa: E402


@pytest.fixture(autouse=True)
def clean_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_document_storage()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()
    reset_document_storage()


@pytest.fixture
def settings():
    return get_settings()


def register(client: TestClient, username: str = "committee", password: str = "secret123") -> str:
    response = client.post("/auth/register", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    token = response.json()["access_token"]
    client.headers.update({"Authorization": f"Bearer {token}"})
    return token


@pytest.fixture
def anon_client():
    return TestClient(app)


@pytest.fixture
def client():
    test_client = TestClient(app)
    register(test_client)
    return test_client


@pytest.fixture(params=["sql", "document"])
def storage(request):
    if request.param == "sql":
        with SessionLocal() as db:
            yield SqlStorage(db)
    else:
        yield DocumentStorage()


class FakeMessages:
    """Stands in for ``Client.messages``; records every create call."""

    def __init__(self):
        self.calls = []
        self.failing_numbers = {}
        self.rejected_senders = set()

    def create(self, **options):
        self.calls.append(options)
        if options.get("from_") in self.rejected_senders:
            raise TwilioRestException(400, "/Messages.json", msg="Invalid From Number", code=21612)
        code = self.failing_numbers.get(options["to"])
        if code is not None:
            raise TwilioRestException(400, "/Messages.json", msg="Message rejected", code=code)
        return SimpleNamespace(sid=f"SM{len(self.calls):04d}")


@pytest.fixture
def twilio_messages():
    return FakeMessages()


def make_sms_settings(**overrides) -> Settings:
    values = {
        "twilio_account_sid": "ACtest",
        "twilio_auth_token": "token",
        "twilio_phone_number": "+15005550006",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def sms_sender(twilio_messages):
    sender = SmsSender(make_sms_settings(), client=SimpleNamespace(messages=twilio_messages))
    app.dependency_overrides[get_sms_sender] = lambda: sender
    return sender


@pytest.fixture(params=["sql", "document"])
def backend_client(request, settings, monkeypatch):
    monkeypatch.setattr(settings, "storage_backend", request.param)
    test_client = TestClient(app)
    register(test_client)
    return test_client
