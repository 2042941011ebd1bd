"""Operator notification system for critical errors and events."""

import logging
from datetime import datetime, timedelta

from shamebot.core.config import settings
from shamebot.core.errors import ErrorKind
from shamebot.interface.discord_sender import send_channel_message


logger = logging.getLogger(__name__)


class NotificationRateLimiter:
    """Rate limiter for operator notifications to prevent spam.

    Tracks notifications per error kind to ensure operators
    are not overwhelmed with duplicate alerts.
    """

    def __init__(self) -> None:
        """Initialize notification rate limiter."""
        self._notifications: dict[str, datetime] = {}

    def can_notify(self, error_kind: ErrorKind) -> bool:
        """Check if a notification can be sent for the given error kind.

        Args:
            error_kind: The kind of error to check

        Returns:
            True if notification is allowed, False if rate limited
        """
        last_notification = self._notifications.get(error_kind.value)
        if last_notification is None:
            return True

        cooldown = timedelta(minutes=settings.admin_notification_cooldown_minutes)
        return datetime.now() - last_notification >= cooldown

    def record_notification(self, error_kind: ErrorKind) -> None:
        """Record a notification for rate limiting."""
        self._notifications[error_kind.value] = datetime.now()

    def reset(self) -> None:
        self._notifications.clear()


# Global rate limiter instance (in-memory)
notification_rate_limiter = NotificationRateLimiter()


def should_notify_admins(error_kind: ErrorKind) -> bool:
    """Determine if operators should hear about a given error kind.

    Only infrastructure failures are operator business. State-machine
    violations go back to the user who caused them, and stale jobs are
    routine after a reschedule.
    """
    return error_kind in {ErrorKind.DELIVERY_FAILURE, ErrorKind.UNKNOWN}


async def notify_admins(message: str, severity: str = "warning", error_kind: ErrorKind | None = None) -> bool:
    """Post a notification to the operator channel.

    When an error kind is given, alerts of that kind are rate limited to one
    per cooldown period.

    Args:
        message: The notification message to send
        severity: Severity level (e.g., "warning", "critical", "info")
        error_kind: Optional kind used for rate limiting

    Returns:
        True if the alert was posted
    """
    if not settings.enable_admin_notifications:
        logger.debug(
            "Admin notifications disabled, skipping notification",
            extra={"alert": message, "severity": severity},
        )
        return False

    if error_kind is not None and not notification_rate_limiter.can_notify(error_kind):
        logger.info("Admin notification rate limited", extra={"error_kind": error_kind.value, "severity": severity})
        return False

    channel_id = settings.discord_operator_channel_id
    if not channel_id:
        logger.warning("No operator channel configured", extra={"alert": message, "severity": severity})
        return False

    logger.info("admin_notifier.notify_admins", extra={"severity": severity})
    try:
        result = await send_channel_message(channel_id=channel_id, text=f"[{severity.upper()}] {message}")
    except Exception as e:
        logger.error("Failed to notify admins", extra={"error": str(e)})
        return False

    if not result.success:
        logger.error("Failed to send admin notification", extra={"error": result.error})
        return False

    if error_kind is not None:
        notification_rate_limiter.record_notification(error_kind)

    logger.info("Admin notification sent", extra={"message_id": result.message_id})
    return True
