"""Notification sink: routes task and workflow messages to Discord."""

import asyncio
import logging
from enum import StrEnum

from pydantic import BaseModel, Field

from shamebot.core.logging import span
from shamebot.domain.task import Task
from shamebot.interface import discord_sender
from shamebot.interface.discord_sender import SendMessageResult


logger = logging.getLogger(__name__)


class TargetKind(StrEnum):
    """Where a notification is delivered."""

    USER = "user"  # direct message
    GUILD = "guild"  # the guild's notice channel


class Notification(BaseModel):
    """A message addressed to a user or a guild."""

    target: TargetKind = Field(..., description="Whether target_id is a user or a guild")
    target_id: str = Field(..., description="Discord user or guild ID")
    message: str = Field(..., description="Plain-text message body")


def to_user(user_id: str, message: str) -> Notification:
    return Notification(target=TargetKind.USER, target_id=user_id, message=message)


def for_task(task: Task, message: str) -> Notification:
    """Address a task notice to its guild, or to the owner when it has none."""
    if task.guild_id:
        return Notification(target=TargetKind.GUILD, target_id=task.guild_id, message=message)
    return to_user(task.user_id, message)


async def deliver(notification: Notification, *, max_retries: int = 3) -> SendMessageResult:
    """Send one notification and report whether it was delivered."""
    with span("notification_service.deliver"):
        if notification.target == TargetKind.GUILD:
            result = await discord_sender.send_guild_message(
                guild_id=notification.target_id,
                text=notification.message,
                max_retries=max_retries,
            )
        else:
            result = await discord_sender.send_direct_message(
                user_id=notification.target_id,
                text=notification.message,
                max_retries=max_retries,
            )

        if result.success:
            logger.info(
                "Notification delivered",
                extra={"target": notification.target.value, "target_id": notification.target_id},
            )
        else:
            logger.warning(
                "Notification not delivered",
                extra={
                    "target": notification.target.value,
                    "target_id": notification.target_id,
                    "error": result.error,
                },
            )
        return result


_background_sends: set[asyncio.Task[None]] = set()


async def _deliver_quietly(notification: Notification) -> None:
    try:
        await deliver(notification)
    except Exception as e:
        logger.error(
            "Background notification failed",
            extra={"target_id": notification.target_id, "error": str(e)},
        )


def notify_in_background(notification: Notification) -> None:
    """Send a notification without making the caller wait or fail on it.

    User-facing operations use this so a Discord outage never blocks or
    fails the action that triggered the message.
    """
    send = asyncio.create_task(_deliver_quietly(notification))
    _background_sends.add(send)
    send.add_done_callback(_background_sends.discard)


async def drain() -> None:
    """Wait for all background sends to finish (shutdown and tests)."""
    while _background_sends:
        await asyncio.gather(*list(_background_sends))
