"""Tests for notification routing and background delivery."""

from unittest.mock import AsyncMock, patch

import pytest

from shamebot.domain.task import Task
from shamebot.interface.discord_sender import SendMessageResult
from shamebot.services import notification_service
from shamebot.services.notification_service import Notification, TargetKind


OWNER = "100000000000000001"
GUILD = "200000000000000001"


@pytest.mark.unit
class TestAddressing:
    """Where a notice goes."""

    def test_task_in_guild_goes_to_guild(self):
        task = Task(id="1", user_id=OWNER, guild_id=GUILD, title="Raid prep")

        notification = notification_service.for_task(task, "hello")

        assert notification == Notification(target=TargetKind.GUILD, target_id=GUILD, message="hello")

    def test_task_without_guild_goes_to_owner(self):
        task = Task(id="1", user_id=OWNER, title="Laundry")

        notification = notification_service.for_task(task, "hello")

        assert notification.target == TargetKind.USER
        assert notification.target_id == OWNER


@pytest.mark.unit
class TestDeliver:
    """deliver() hands the message to the right Discord call."""

    async def test_user_target_sends_dm(self):
        with patch(
            "shamebot.services.notification_service.discord_sender.send_direct_message", new_callable=AsyncMock
        ) as send_dm:
            send_dm.return_value = SendMessageResult(success=True, message_id="1")

            result = await notification_service.deliver(notification_service.to_user(OWNER, "hi"), max_retries=1)

            assert result.success is True
            send_dm.assert_awaited_once_with(user_id=OWNER, text="hi", max_retries=1)

    async def test_guild_target_sends_to_guild_channel(self):
        with patch(
            "shamebot.services.notification_service.discord_sender.send_guild_message", new_callable=AsyncMock
        ) as send_guild:
            send_guild.return_value = SendMessageResult(success=False, error="Missing Access")
            notification = Notification(target=TargetKind.GUILD, target_id=GUILD, message="time's up")

            result = await notification_service.deliver(notification)

            assert result.success is False
            send_guild.assert_awaited_once_with(guild_id=GUILD, text="time's up", max_retries=3)


@pytest.mark.unit
class TestBackgroundDelivery:
    """User operations never wait on or fail because of Discord."""

    async def test_notify_in_background_then_drain(self, sink):
        notification_service.notify_in_background(notification_service.to_user(OWNER, "one"))
        notification_service.notify_in_background(notification_service.to_user(OWNER, "two"))

        await notification_service.drain()

        assert sorted(sink.messages_to(OWNER)) == ["one", "two"]

    async def test_background_exception_is_logged_not_raised(self, monkeypatch):
        monkeypatch.setattr(notification_service, "deliver", AsyncMock(side_effect=RuntimeError("socket closed")))

        notification_service.notify_in_background(notification_service.to_user(OWNER, "lost"))

        await notification_service.drain()
