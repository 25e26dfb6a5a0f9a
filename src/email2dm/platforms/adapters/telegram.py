"""Telegram Bot API client."""

import logging
import re
from typing import Any, Optional

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden, InvalidToken, NetworkError, TelegramError, TimedOut
from telegram.request import HTTPXRequest

from email2dm.dispatch.exceptions import InvalidIdentifier
from email2dm.mail.normalizer import NormalizedMessage
from email2dm.platforms.exceptions import PlatformAPIFailure, TransportFailure
from email2dm.platforms.models import IdentifierKind, PlatformCapabilities, PlatformType
from email2dm.platforms.protocol import PlatformClient

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"^[+-]?\d+$", re.ASCII)
_GROUP_RE = re.compile(r"^g(\d+)$", re.ASCII)
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

TELEGRAM_MAX_MESSAGE_LENGTH = 4096


def _parse_int64(value: str) -> int | None:
    if not _INT_RE.match(value):
        return None
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        return None
    return number


def escape_html(text: str) -> str:
    """Escape the characters Telegram's HTML parse mode treats as markup."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


class TelegramClient(PlatformClient):
    """Telegram client posting messages through python-telegram-bot.

    Destinations are numeric chat IDs; groups can be addressed with the
    ``g<digits>`` notation, which dispatch rewrites to ``-<digits>``.

    Configuration:
        - bot_token: Telegram bot token from @BotFather
        - timeout: Seconds allowed for each Bot API request
        - chunk_delay: Seconds between the parts of a split message
        - max_message_length: Per-message character limit
    """

    def __init__(
        self,
        bot_token: str,
        timeout: float = 10.0,
        chunk_delay: float = 0.5,
        max_message_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
        bot: Optional[Bot] = None,
    ):
        """Initialize Telegram client.

        Args:
            bot_token: Bot token from @BotFather
            timeout: Request timeout in seconds
            chunk_delay: Delay between message parts in seconds
            max_message_length: Character limit per message
            bot: Pre-built Bot instance (used by tests)
        """
        super().__init__()

        if bot is None:
            request = HTTPXRequest(
                connect_timeout=timeout,
                read_timeout=timeout,
                write_timeout=timeout,
                pool_timeout=timeout,
            )
            bot = Bot(token=bot_token, request=request)
        self._bot = bot

        self._capabilities = PlatformCapabilities(
            max_message_length=max_message_length,
            chunk_delay=chunk_delay,
            part_marker="[Part {n}]\n",
            markdown_flavor="html",
        )

    @property
    def platform_type(self) -> PlatformType:
        """The type of platform this client handles."""
        return PlatformType.TELEGRAM

    @property
    def capabilities(self) -> PlatformCapabilities:
        """Length limit, chunk delay and part marker of this platform."""
        return self._capabilities

    @classmethod
    def validate_identifier(cls, identifier: str) -> IdentifierKind:
        """Accept a non-zero signed 64-bit chat ID or ``g<digits>`` group notation."""
        group = _GROUP_RE.match(identifier)
        if group:
            number = _parse_int64(group.group(1))
            if number is None or number == 0:
                raise InvalidIdentifier(identifier, "telegram", "group ID out of range")
            return IdentifierKind.GROUP

        number = _parse_int64(identifier)
        if number is None:
            raise InvalidIdentifier(identifier, "telegram", "expected a numeric chat ID")
        if number == 0:
            raise InvalidIdentifier(identifier, "telegram", "chat ID cannot be zero")
        return IdentifierKind.CHAT_ID

    async def start(self) -> None:
        """Initialize the HTTP session and fetch the bot identity."""
        if self._running:
            logger.warning("Telegram client already running")
            return

        try:
            await self._bot.initialize()
        except TelegramError as e:
            # Sending can still succeed later; the startup check reports the problem.
            logger.warning(f"Telegram bot initialization failed: {e}")
        self._running = True

    async def stop(self) -> None:
        """Close the HTTP session."""
        if not self._running:
            return
        await self._bot.shutdown()
        self._running = False

    def format_message(self, message: NormalizedMessage) -> str:
        """Render an email as Telegram HTML."""
        return (
            "📧 <b>New Email</b>\n\n"
            f"<b>From:</b> {escape_html(message.from_address)}\n"
            f"<b>To:</b> {escape_html(message.to_address)}\n"
            f"<b>Subject:</b> {escape_html(message.subject)}\n"
            f"<b>Date:</b> {escape_html(message.date)}\n\n"
            f"<b>Message:</b>\n{escape_html(message.body)}"
        )

    async def send(self, text: str, destination: str) -> str:
        """Send one message with ``sendMessage`` in HTML parse mode."""
        chat_id: int | str = _parse_int64(destination) or destination
        try:
            sent = await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
            )
        except TimedOut as e:
            raise TransportFailure(f"telegram request timed out: {e.message}", "telegram") from e
        except BadRequest as e:
            raise PlatformAPIFailure(e.message, "telegram", status_code=400) from e
        except NetworkError as e:
            raise TransportFailure(e.message, "telegram") from e
        except Forbidden as e:
            raise PlatformAPIFailure(e.message, "telegram", status_code=403) from e
        except InvalidToken as e:
            raise PlatformAPIFailure(e.message, "telegram", status_code=401) from e
        except TelegramError as e:
            raise PlatformAPIFailure(e.message, "telegram") from e

        logger.debug(f"Sent Telegram message {sent.message_id} to {destination}")
        return str(sent.message_id)

    async def test_connection(self) -> dict[str, Any]:
        """Check the token with ``getMe``."""
        try:
            me = await self._bot.get_me()
        except BadRequest as e:
            raise PlatformAPIFailure(e.message, "telegram", status_code=400) from e
        except NetworkError as e:
            raise TransportFailure(e.message, "telegram") from e
        except TelegramError as e:
            raise PlatformAPIFailure(e.message, "telegram") from e

        logger.info(f"Telegram bot connected: @{me.username} (ID: {me.id})")
        return {"id": me.id, "username": me.username, "name": me.first_name}
