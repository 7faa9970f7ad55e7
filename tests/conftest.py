"""
Pytest configuration file for the CampusCare test suite.

This file defines shared fixtures used across the test files:
- Settings pointing at a temporary data file, key file and media directory.
- A `CampusContext` whose Gemini client has fake model objects injected, so no
  request ever leaves the process.
- Signed-in student and admin portals, and a recorder for permission events.
"""
import pytest
from cryptography.fernet import Fernet

from campuscare.config import Settings
from campuscare.context import create_context
from campuscare.errors import PERMISSION_ERROR
from campuscare.gemini import GeminiClient
from campuscare.portal import CampusPortalService


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeChat:
    def __init__(self, model, history):
        self.model = model
        self.history = history

    def send_message(self, content):
        self.model.calls.append(content)
        if self.model.error:
            raise self.model.error
        return FakeResponse(self.model.text)


class FakeModel:
    """Stands in for `genai.GenerativeModel`, returning a canned response text."""

    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []
        self.chats = []

    def generate_content(self, contents, **kwargs):
        self.calls.append((contents, kwargs))
        if self.error:
            raise self.error
        return FakeResponse(self.text)

    def start_chat(self, history=None):
        chat = FakeChat(self, history or [])
        self.chats.append(chat)
        return chat


@pytest.fixture
def settings(tmp_path):
    """Settings isolated in a temporary directory, with live refresh disabled."""
    return Settings(
        data_file=str(tmp_path / "records.json"),
        key_file=str(tmp_path / "secret.key"),
        media_dir=str(tmp_path / "media"),
        gemini_api_key="test-key",
        live_refresh_seconds=0,
    )


@pytest.fixture
def fernet():
    return Fernet(Fernet.generate_key())


@pytest.fixture
def ai():
    """A real `GeminiClient` whose models are replaced by `FakeModel` instances."""
    client = GeminiClient("test-key")
    client.model = FakeModel('{"healthRisks": []}')
    client.chat_model = FakeModel("Apply gentle pressure with a clean cloth.")
    client.vision_model = FakeModel('{"calories": 450, "proteinGrams": 20, "carbsGrams": 55, "fatGrams": 12}')
    return client


@pytest.fixture
def sent_codes():
    return []


@pytest.fixture
def context(settings, fernet, ai, sent_codes):
    ctx = create_context(settings, encryptor=fernet, ai=ai,
                         otp_sender=lambda phone, code: sent_codes.append((phone, code)))
    yield ctx
    ctx.close()


@pytest.fixture
def store(context):
    return context.store


@pytest.fixture
def permission_events(context):
    """Collects every permission event published on the diagnostic channel."""
    events = []
    unsubscribe = context.errors.on(PERMISSION_ERROR, events.append)
    yield events
    unsubscribe()


def _signed_in_portal(context, email):
    portal = CampusPortalService(context)
    result = portal.login_with_email(email, "secret123")
    assert result.ok, result
    return portal


@pytest.fixture
def student(context):
    """A portal signed in as an ordinary student."""
    return _signed_in_portal(context, "student@campus.edu")


@pytest.fixture
def other_student(context):
    return _signed_in_portal(context, "friend@campus.edu")


@pytest.fixture
def admin(context):
    """A portal signed in as a user holding the admin role."""
    portal = _signed_in_portal(context, "admin@campus.edu")
    context.store.grant_admin(portal.uid)
    return portal
