"""Pytest configuration and fixtures."""

import os
import re

import pytest

# Set test environment before app imports
os.environ["JWT_SECRET"] = "test-secret-with-enough-length-for-hs256-signing"
os.environ.pop("SMTP_USER", None)
os.environ.pop("SMTP_PASSWORD", None)

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin!"

_CODE_RE = re.compile(r"code=([A-Za-z0-9_\-.]+)")


@pytest.fixture(autouse=True)
def test_database(tmp_path, monkeypatch):
    """Point the app at a fresh SQLite database for every test."""
    from accounts.users.models import init_db, reset_engine

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path}/test_accounts.db")
    reset_engine()
    init_db()

    yield

    reset_engine()


@pytest.fixture(autouse=True)
def anonymous():
    """Every test starts without a current user."""
    from accounts.users.auditing import logout

    logout()
    yield
    logout()


@pytest.fixture
def session():
    from accounts.users.models import get_session

    db = get_session()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sent_mails(monkeypatch):
    """Capture outgoing mails instead of sending them."""
    from accounts.auth import email

    mails = []

    def fake_send(to, subject, html_body, text_body=None):
        mails.append({"to": to, "subject": subject, "html": html_body, "text": text_body})
        return True

    monkeypatch.setattr(email, "send_email", fake_send)
    return mails


@pytest.fixture
def client(sent_mails):
    """A TestClient with startup (schema + first admin) already run."""
    from fastapi.testclient import TestClient

    from accounts.web.server import app

    with TestClient(app) as test_client:
        yield test_client


def extract_code(mail) -> str:
    """Pull the ``code=...`` value out of a captured mail."""
    match = _CODE_RE.search(mail["text"])
    assert match, f"No code in mail: {mail['subject']}"
    return match.group(1)


def auth_headers(response) -> dict:
    """Turn the auth header of a response into request headers."""
    from accounts.config import settings

    return {"Authorization": response.headers[settings.auth_header]}
