"""Platform client protocol definition."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from email2dm.mail.normalizer import NormalizedMessage
from email2dm.platforms.chunking import plan_chunks
from email2dm.platforms.exceptions import PlatformError
from email2dm.platforms.models import IdentifierKind, PlatformCapabilities, PlatformType

logger = logging.getLogger(__name__)


class PlatformClient(ABC):
    """Abstract base class for chat platform clients.

    Each platform (Telegram, Slack) implements this protocol so the
    dispatch orchestrator can validate identifiers, format messages and
    deliver them without knowing which platform it talks to.
    """

    def __init__(self) -> None:
        """Initialize the platform client."""
        self._running = False

    @property
    @abstractmethod
    def platform_type(self) -> PlatformType:
        """The type of platform this client handles."""
        ...

    @property
    @abstractmethod
    def capabilities(self) -> PlatformCapabilities:
        """Length limit, chunk delay and part marker of this platform."""
        ...

    @property
    def is_running(self) -> bool:
        """Check if the client has been started."""
        return self._running

    @classmethod
    @abstractmethod
    def validate_identifier(cls, identifier: str) -> IdentifierKind:
        """Check the syntax of a recipient local part for this platform.

        No network lookups happen here.

        Args:
            identifier: Local part of the recipient address

        Returns:
            The identifier shape that matched

        Raises:
            InvalidIdentifier: If the identifier matches no accepted shape
        """
        ...

    async def start(self) -> None:
        """Prepare the underlying SDK client."""
        self._running = True

    async def stop(self) -> None:
        """Release the underlying SDK client."""
        self._running = False

    @abstractmethod
    def format_message(self, message: NormalizedMessage) -> str:
        """Render a normalized email for this platform. Never fails.

        Args:
            message: Normalized email

        Returns:
            Platform-formatted text, possibly longer than the platform limit
        """
        ...

    @abstractmethod
    async def send(self, text: str, destination: str) -> str:
        """Post a single message.

        Args:
            text: Message text within the platform limit
            destination: Resolved chat, user or channel identifier

        Returns:
            Platform message identifier

        Raises:
            TransportFailure: On network errors or timeouts
            PlatformAPIFailure: If the platform reports an error
        """
        ...

    async def send_long(self, text: str, destination: str) -> int:
        """Post a message of any length, splitting it into parts if needed.

        Parts after the first carry a part marker and are sent in order,
        separated by the platform chunk delay. The first failure aborts the
        remaining parts.

        Args:
            text: Full message text
            destination: Resolved chat, user or channel identifier

        Returns:
            Number of messages sent

        Raises:
            PlatformError: From the first failing part, with chunk and
                total_chunks set when the message was split
        """
        caps = self.capabilities
        if len(text) <= caps.max_message_length:
            await self.send(text, destination)
            return 1

        chunks = plan_chunks(text, caps)
        total = len(chunks)
        logger.info(
            f"Splitting {len(text)} chars into {total} parts for "
            f"{self.platform_type.value}:{destination}"
        )

        for index, chunk in enumerate(chunks, start=1):
            if index > 1:
                await asyncio.sleep(caps.chunk_delay)
                chunk = caps.marker_for(index) + chunk
            try:
                await self.send(chunk, destination)
            except PlatformError as e:
                e.chunk = index
                e.total_chunks = total
                raise
        return total

    @abstractmethod
    async def test_connection(self) -> dict[str, Any]:
        """Verify credentials without any user-visible side effect.

        Returns:
            Identity details reported by the platform

        Raises:
            TransportFailure: On network errors or timeouts
            PlatformAPIFailure: If the credentials are rejected
        """
        ...


class IdentifierResolver(ABC):
    """Capability of clients that can turn a username into a platform ID."""

    @abstractmethod
    async def resolve_identifier(self, username: str) -> str:
        """Look up the platform ID for a username.

        Args:
            username: Case-sensitive account name

        Returns:
            Platform ID usable as a destination

        Raises:
            UnknownIdentifier: If no account matches
            TransportFailure: On network errors or timeouts
            PlatformAPIFailure: If the directory listing fails
        """
        ...
