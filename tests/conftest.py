"""Pytest configuration and shared fixtures."""

import pytest

from shamebot.core.admin_notifier import notification_rate_limiter
from shamebot.core.config import settings
from shamebot.core.scheduler_tracker import job_tracker
from shamebot.interface import discord_sender


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Pin settings to known values so a local .env never leaks into tests."""
    monkeypatch.setattr(settings, "discord_bot_token", "test-bot-token")
    monkeypatch.setattr(settings, "discord_api_base_url", "https://discord.test/api/v10")
    monkeypatch.setattr(settings, "discord_default_channel_id", "default-channel")
    monkeypatch.setattr(settings, "discord_operator_channel_id", "ops-channel")
    monkeypatch.setattr(settings, "shamebot_url", "https://shamebot.test")
    monkeypatch.setattr(settings, "enable_admin_notifications", True)
    monkeypatch.setattr(settings, "reminder_lead_seconds", 3600)
    monkeypatch.setattr(settings, "overdue_grace_seconds", 0)
    monkeypatch.setattr(settings, "default_pester_limit", 5)
    monkeypatch.setattr(settings, "dispatch_max_attempts", 3)
    monkeypatch.setattr(settings, "dispatch_backoff_base_seconds", 2.0)
    return settings


@pytest.fixture(autouse=True)
def reset_in_memory_state(monkeypatch):
    """Give each test a clean job tracker and fresh rate limiters."""
    job_tracker.reset()
    notification_rate_limiter.reset()
    monkeypatch.setattr(discord_sender, "rate_limiter", discord_sender.RateLimiter())
    yield
    job_tracker.reset()
    notification_rate_limiter.reset()
