"""Username to platform ID cache."""

import asyncio
import logging

logger = logging.getLogger(__name__)


class IdentifierCache:
    """Process-lifetime map of usernames to platform IDs.

    Entries are never evicted. Keys are case-sensitive. All access goes
    through an asyncio lock so concurrent sessions see a consistent map.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, username: str) -> str | None:
        """Return the cached ID for a username, if any."""
        async with self._lock:
            return self._entries.get(username)

    async def update(self, entries: dict[str, str]) -> None:
        """Merge a batch of username -> ID pairs into the cache."""
        async with self._lock:
            self._entries.update(entries)
            logger.debug(f"Identifier cache now holds {len(self._entries)} entries")
