"""Registry of configured platform clients."""

import logging
from typing import Any

from email2dm.platforms.models import PlatformType
from email2dm.platforms.protocol import PlatformClient

logger = logging.getLogger(__name__)


class PlatformRouter:
    """Maps each platform to its configured client.

    The router:
    1. Holds at most one client per platform
    2. Starts and stops every registered client
    3. Runs credential checks across all clients
    """

    def __init__(self) -> None:
        self._clients: dict[PlatformType, PlatformClient] = {}
        self._running = False

    def register_client(self, client: PlatformClient) -> None:
        """Register a platform client.

        Args:
            client: The client to register

        Raises:
            ValueError: If a client for this platform is already registered
        """
        platform = client.platform_type
        if platform in self._clients:
            raise ValueError(f"Client for {platform.value} already registered")

        self._clients[platform] = client
        logger.info(f"Registered client for platform: {platform.value}")

    def get_client(self, platform: PlatformType) -> PlatformClient | None:
        """Return the client for a platform, or None if it is not configured."""
        return self._clients.get(platform)

    @property
    def platforms(self) -> list[PlatformType]:
        """Platforms with a registered client."""
        return list(self._clients)

    async def start(self) -> None:
        """Start all registered clients."""
        if self._running:
            logger.warning("Platform router is already running")
            return

        self._running = True
        for platform, client in self._clients.items():
            await client.start()
            logger.info(f"Started client for {platform.value}")

    async def stop(self) -> None:
        """Stop all registered clients, logging failures."""
        if not self._running:
            return

        self._running = False
        for platform, client in self._clients.items():
            try:
                await client.stop()
            except Exception as e:
                logger.error(f"Failed to stop client for {platform.value}: {e}")

    async def test_connections(self) -> dict[PlatformType, dict[str, Any] | Exception]:
        """Check credentials of every client.

        Returns:
            Identity details per platform, or the exception raised by the check
        """
        results: dict[PlatformType, dict[str, Any] | Exception] = {}
        for platform, client in self._clients.items():
            try:
                results[platform] = await client.test_connection()
            except Exception as e:
                logger.warning(f"{platform.value} connection test failed: {e}")
                results[platform] = e
        return results
