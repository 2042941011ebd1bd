"""Discord message sender with rate limiting and retry logic using the REST API."""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta

import httpx
from pydantic import BaseModel, Field

from shamebot.core import db_client
from shamebot.core.config import constants, settings
from shamebot.domain.guild import Guild


logger = logging.getLogger(__name__)


# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


class SendMessageResult(BaseModel):
    """Result of sending a Discord message."""

    success: bool = Field(..., description="Whether the message was sent successfully")
    message_id: str | None = Field(None, description="Discord message ID if successful")
    error: str | None = Field(None, description="Error message if failed")


class RateLimiter:
    """In-memory rate limiter for Discord API calls.

    Tracks requests per target (user or channel) per minute to stay under Discord's limits.
    """

    def __init__(self) -> None:
        """Initialize rate limiter."""
        self._requests: dict[str, list[datetime]] = defaultdict(list)

    def can_send(self, target: str) -> bool:
        """Check if a message can be sent to the given target.

        Args:
            target: User or channel ID to check

        Returns:
            True if sending is allowed, False if rate limited
        """
        now = datetime.now()
        cutoff = now - timedelta(minutes=1)

        # Clean up old requests; targets with nothing recent are dropped
        recent = [ts for ts in self._requests.get(target, []) if ts > cutoff]
        if recent:
            self._requests[target] = recent
        else:
            self._requests.pop(target, None)

        return len(recent) < constants.MAX_REQUESTS_PER_MINUTE

    def record_request(self, target: str) -> None:
        """Record a request for rate limiting."""
        self._requests[target].append(datetime.now())


# Global rate limiter instance (in-memory)
rate_limiter = RateLimiter()


def _headers() -> dict[str, str]:
    token = settings.require_credential("discord_bot_token", "Discord bot")
    return {"Authorization": f"Bot {token}", "Content-Type": "application/json"}


async def _post_with_retry(
    *,
    path: str,
    payload: dict,
    max_retries: int,
    retry_delay: float,
) -> httpx.Response | SendMessageResult:
    """POST to the Discord API, retrying server errors and transport failures.

    Returns the successful response, or a failed SendMessageResult.
    """
    url = f"{settings.discord_api_base_url}{path}"
    headers = _headers()

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
                response = await client.post(url, json=payload, headers=headers)

                if response.is_success:
                    return response

                if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                    return SendMessageResult(success=False, error=f"Client error: {response.text}")

                raise httpx.HTTPStatusError(
                    f"Server error: {response.status_code}", request=response.request, response=response
                )
        except httpx.HTTPStatusError as e:
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))
            else:
                return SendMessageResult(success=False, error=str(e))
        except Exception as e:
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))
            else:
                return SendMessageResult(success=False, error=f"Failed after retries: {e!s}")

    return SendMessageResult(success=False, error="Max retries exceeded")


async def send_channel_message(
    *,
    channel_id: str,
    text: str,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> SendMessageResult:
    """Send a text message to a Discord channel."""
    if not rate_limiter.can_send(channel_id):
        return SendMessageResult(success=False, error="Rate limit exceeded. Please try again later.")

    rate_limiter.record_request(channel_id)
    result = await _post_with_retry(
        path=f"/channels/{channel_id}/messages",
        payload={"content": text},
        max_retries=max_retries,
        retry_delay=retry_delay,
    )
    if isinstance(result, SendMessageResult):
        return result

    return SendMessageResult(success=True, message_id=result.json().get("id"))


async def send_direct_message(
    *,
    user_id: str,
    text: str,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> SendMessageResult:
    """Send a DM to a user by opening (or reusing) their DM channel."""
    if not rate_limiter.can_send(user_id):
        return SendMessageResult(success=False, error="Rate limit exceeded. Please try again later.")

    rate_limiter.record_request(user_id)
    result = await _post_with_retry(
        path="/users/@me/channels",
        payload={"recipient_id": user_id},
        max_retries=max_retries,
        retry_delay=retry_delay,
    )
    if isinstance(result, SendMessageResult):
        return result

    channel_id = result.json().get("id")
    if not channel_id:
        return SendMessageResult(success=False, error="Discord did not return a DM channel")

    return await send_channel_message(
        channel_id=channel_id, text=text, max_retries=max_retries, retry_delay=retry_delay
    )


async def resolve_guild_channel(guild_id: str) -> str | None:
    """Find the channel a guild's notices go to, falling back to the default channel."""
    try:
        guild = Guild(**await db_client.get_record(collection="guilds", record_id=guild_id))
        if guild.send_to:
            return guild.send_to
    except KeyError:
        logger.warning("Guild %s not registered, using default channel", guild_id)
    return settings.discord_default_channel_id


async def send_guild_message(
    *,
    guild_id: str,
    text: str,
    max_retries: int = 3,
    retry_delay: float = 1.0,
) -> SendMessageResult:
    """Send a text message to a guild's notice channel."""
    channel_id = await resolve_guild_channel(guild_id)
    if not channel_id:
        return SendMessageResult(success=False, error=f"No notice channel configured for guild {guild_id}")

    return await send_channel_message(
        channel_id=channel_id, text=text, max_retries=max_retries, retry_delay=retry_delay
    )
