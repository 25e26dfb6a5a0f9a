"""Slack Web API client."""

import asyncio
import logging
import math
from typing import Any, Optional

import aiohttp
from slack_sdk.errors import SlackApiError, SlackClientError
from slack_sdk.web.async_client import AsyncWebClient

from email2dm.dispatch.exceptions import InvalidIdentifier
from email2dm.mail.normalizer import NormalizedMessage
from email2dm.platforms.cache import IdentifierCache
from email2dm.platforms.exceptions import PlatformAPIFailure, TransportFailure, UnknownIdentifier
from email2dm.platforms.models import IdentifierKind, PlatformCapabilities, PlatformType
from email2dm.platforms.protocol import IdentifierResolver, PlatformClient

logger = logging.getLogger(__name__)

SLACK_MAX_MESSAGE_LENGTH = 40000
USERS_LIST_PAGE_SIZE = 200

# Slack IDs are a type letter followed by at least eight characters.
_MIN_ID_LENGTH = 9


def escape_mrkdwn(text: str) -> str:
    """Escape the three characters Slack reserves for control sequences."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


class SlackClient(PlatformClient, IdentifierResolver):
    """Slack client posting messages with ``chat.postMessage``.

    Destinations are user IDs (``U...``), channel IDs (``C...``), channel
    names (``#general``) or bare usernames, which are looked up through
    ``users.list`` and cached for the life of the process.

    Configuration:
        - bot_token: Bot user OAuth token (xoxb-...)
        - timeout: Seconds allowed for each Web API request
        - chunk_delay: Seconds between the parts of a split message
        - max_message_length: Per-message character limit
    """

    def __init__(
        self,
        bot_token: str,
        timeout: float = 10.0,
        chunk_delay: float = 1.0,
        max_message_length: int = SLACK_MAX_MESSAGE_LENGTH,
        web_client: Optional[AsyncWebClient] = None,
        cache: Optional[IdentifierCache] = None,
    ):
        """Initialize Slack client.

        Args:
            bot_token: Bot user OAuth token
            timeout: Request timeout in seconds
            chunk_delay: Delay between message parts in seconds
            max_message_length: Character limit per message
            web_client: Pre-built AsyncWebClient (used by tests)
            cache: Username cache shared with other clients
        """
        super().__init__()

        self._web_client = web_client or AsyncWebClient(token=bot_token, timeout=max(1, math.ceil(timeout)))
        self._cache = cache or IdentifierCache()

        self._capabilities = PlatformCapabilities(
            max_message_length=max_message_length,
            chunk_delay=chunk_delay,
            part_marker="*[Part {n}]*\n",
            markdown_flavor="mrkdwn",
        )

    @property
    def platform_type(self) -> PlatformType:
        """The type of platform this client handles."""
        return PlatformType.SLACK

    @property
    def capabilities(self) -> PlatformCapabilities:
        """Length limit, chunk delay and part marker of this platform."""
        return self._capabilities

    @property
    def cache(self) -> IdentifierCache:
        """Username to user ID cache."""
        return self._cache

    @classmethod
    def validate_identifier(cls, identifier: str) -> IdentifierKind:
        """Accept user IDs, channel IDs, ``#channel`` names and bare usernames."""
        if identifier.startswith("U") and len(identifier) >= _MIN_ID_LENGTH:
            return IdentifierKind.USER_ID
        if identifier.startswith("C") and len(identifier) >= _MIN_ID_LENGTH:
            return IdentifierKind.CHANNEL_ID
        if identifier.startswith("#"):
            if len(identifier) > 1 and "#" not in identifier[1:]:
                return IdentifierKind.CHANNEL_NAME
            raise InvalidIdentifier(identifier, "slack", "empty or malformed channel name")
        if identifier and "#" not in identifier and "@" not in identifier:
            return IdentifierKind.USERNAME
        raise InvalidIdentifier(identifier, "slack")

    def format_message(self, message: NormalizedMessage) -> str:
        """Render an email as Slack mrkdwn with the body in a code block."""
        return (
            ":email: *New Email*\n\n"
            f"*From:* {escape_mrkdwn(message.from_address)}\n"
            f"*To:* {escape_mrkdwn(message.to_address)}\n"
            f"*Subject:* {escape_mrkdwn(message.subject)}\n"
            f"*Date:* {escape_mrkdwn(message.date)}\n\n"
            f"*Message:*\n```\n{escape_mrkdwn(message.body)}\n```"
        )

    async def _call(self, method: str, **kwargs: Any) -> Any:
        """Invoke a Web API method, mapping SDK errors to platform errors."""
        try:
            return await getattr(self._web_client, method)(**kwargs)
        except SlackApiError as e:
            error = e.response.get("error") or str(e)
            logger.error(f"Slack {method} failed: {error}")
            raise PlatformAPIFailure(error, "slack", status_code=e.response.status_code) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailure(f"slack {method} request failed: {e!r}", "slack") from e
        except SlackClientError as e:
            raise TransportFailure(str(e), "slack") from e

    async def send(self, text: str, destination: str) -> str:
        """Send one message with ``chat.postMessage``."""
        response = await self._call("chat_postMessage", channel=destination, text=text, mrkdwn=True)
        logger.debug(f"Sent Slack message {response.get('ts')} to {destination}")
        return str(response.get("ts", ""))

    async def resolve_identifier(self, username: str) -> str:
        """Look up a user ID by username, listing the workspace on a cache miss."""
        cached = await self._cache.get(username)
        if cached:
            return cached

        logger.info(f"Slack username {username!r} not cached, listing workspace users")
        directory = await self._list_users()
        await self._cache.update(directory)

        user_id = directory.get(username)
        if not user_id:
            raise UnknownIdentifier(username, "slack")
        return user_id

    async def _list_users(self) -> dict[str, str]:
        """Fetch every page of ``users.list`` into a username -> ID map."""
        directory: dict[str, str] = {}
        display_names: dict[str, str] = {}
        cursor: str | None = None

        while True:
            kwargs: dict[str, Any] = {"limit": USERS_LIST_PAGE_SIZE}
            if cursor:
                kwargs["cursor"] = cursor
            response = await self._call("users_list", **kwargs)

            for member in response.get("members", []):
                if member.get("deleted") or not member.get("id"):
                    continue
                if member.get("name"):
                    directory[member["name"]] = member["id"]
                display_name = (member.get("profile") or {}).get("display_name")
                if display_name:
                    display_names.setdefault(display_name, member["id"])

            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break

        # Account names win over display names that collide with them.
        for name, user_id in display_names.items():
            directory.setdefault(name, user_id)
        return directory

    async def test_connection(self) -> dict[str, Any]:
        """Check the token with ``auth.test``."""
        response = await self._call("auth_test")
        logger.info(f"Slack bot connected: {response.get('user')} in {response.get('team')}")
        return {
            "user": response.get("user"),
            "user_id": response.get("user_id"),
            "team": response.get("team"),
        }

    async def stop(self) -> None:
        """Close the underlying aiohttp session if the SDK opened one."""
        session = getattr(self._web_client, "session", None)
        if session is not None and not session.closed:
            await session.close()
        self._running = False
