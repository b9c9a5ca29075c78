"""Shared test fixtures for the contact service test suite."""

import time
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from contact_service.app import app
from contact_service.shared.contact.config import ContactSettings
from contact_service.shared.contact.email_utils import ContactNotifier
from contact_service.shared.contact.rate_limit import RateLimitStore, SlidingWindowRateLimiter
from contact_service.shared.contact.routes import (
    get_contact_settings,
    get_notifier,
    get_rate_limiter,
)

SUPPORT_EMAIL = "support@example.com"


class FakeMailTransport:
    """Records every message instead of sending it. Recipients in fail_for are refused."""

    def __init__(self, fail_for: Optional[List[str]] = None):
        self.fail_for = set(fail_for or [])
        self.sent: List[Dict] = []

    def send(self, to, subject, body, headers):
        self.sent.append({"to": to, "subject": subject, "body": body, "headers": dict(headers)})
        return to not in self.fail_for


@pytest.fixture
def settings(tmp_path):
    return ContactSettings(
        site_name="Site",
        site_host="site.example.com",
        support_email=SUPPORT_EMAIL,
        from_email="no-reply@example.com",
        from_name="Site Website",
        data_dir=tmp_path / "data",
        rate_limit_lock_timeout=2.0,
    )


@pytest.fixture
def store(settings):
    return RateLimitStore(settings.rate_limit_file, lock_timeout=settings.rate_limit_lock_timeout)


@pytest.fixture
def limiter(store, settings):
    return SlidingWindowRateLimiter(
        store,
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
    )


@pytest.fixture
def transport():
    return FakeMailTransport()


@pytest.fixture
def notifier(transport, settings):
    return ContactNotifier(transport, settings)


@pytest.fixture(name="client")
def fixture_client(settings, limiter, notifier):
    app.dependency_overrides[get_contact_settings] = lambda: settings
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def valid_form():
    """A submission that passes every check."""
    return {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "phone": "",
        "subject": "Quote request",
        "message": "Hello",
        "website": "",
        "started_at": str(int(time.time() * 1000) - 5000),
    }
