"""Pytest configuration and fixtures for unit tests."""

from unittest.mock import AsyncMock

import pytest

from shamebot.core import db_client
from shamebot.core.config import settings
from shamebot.services import notification_service
from tests.unit.mocks import FakeNotificationSink


@pytest.fixture
def sink(monkeypatch) -> FakeNotificationSink:
    """Replaces Discord delivery with an in-memory recorder."""
    fake = FakeNotificationSink()
    monkeypatch.setattr(notification_service, "deliver", fake)
    return fake


@pytest.fixture
async def db(tmp_path, monkeypatch, sink):
    """Fresh SQLite database per test, with Discord delivery faked out."""
    monkeypatch.setattr(settings, "sqlite_db_path", str(tmp_path / "shamebot.db"))
    await db_client.init_db()
    yield
    await notification_service.drain()
    await db_client.close_connection()


@pytest.fixture(autouse=True)
def admin_alerts(monkeypatch) -> AsyncMock:
    """Captures operator alerts instead of posting them to Discord."""
    mock = AsyncMock(return_value=True)
    monkeypatch.setattr("shamebot.core.scheduler_tracker.notify_admins", mock)
    monkeypatch.setattr("shamebot.services.job_store.notify_admins", mock)
    monkeypatch.setattr("shamebot.services.dispatcher.notify_admins", mock)
    return mock


@pytest.fixture
def no_backoff(monkeypatch) -> AsyncMock:
    """Skip the sleeps between retry attempts."""
    mock_sleep = AsyncMock()
    monkeypatch.setattr("shamebot.core.scheduler_tracker.asyncio.sleep", mock_sleep)
    return mock_sleep
