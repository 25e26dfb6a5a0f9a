"""SMTP bridge process: builds every component from configuration and serves."""

import asyncio
import logging
import signal
import ssl
from pathlib import Path
from typing import Optional

from email2dm import __version__
from email2dm.audit.logger import AuditLogger
from email2dm.config.schema import Config, TLSConfig
from email2dm.dispatch.orchestrator import DispatchOrchestrator
from email2dm.dispatch.resolver import AddressResolver
from email2dm.gateway.session import SessionGateway
from email2dm.gateway.smtp import GatewayAuthenticator, GatewayHandler, GatewaySMTP
from email2dm.platforms.adapters import SlackClient, TelegramClient
from email2dm.platforms.router import PlatformRouter
from email2dm.security.network import NetworkFilter

logger = logging.getLogger(__name__)


def build_router(config: Config) -> PlatformRouter:
    """Create a client for every platform that has a bot token configured."""
    router = PlatformRouter()
    telegram = config.platforms.telegram
    if telegram.enabled:
        router.register_client(
            TelegramClient(
                bot_token=telegram.bot_token,
                timeout=telegram.timeout_seconds,
                chunk_delay=telegram.chunk_delay_seconds,
                max_message_length=telegram.max_message_length,
            )
        )
    slack = config.platforms.slack
    if slack.enabled:
        router.register_client(
            SlackClient(
                bot_token=slack.bot_token,
                timeout=slack.timeout_seconds,
                chunk_delay=slack.chunk_delay_seconds,
                max_message_length=slack.max_message_length,
            )
        )
    if not router.platforms:
        logger.warning("No platform tokens configured; every message will fail to deliver")
    return router


def build_tls_context(tls: TLSConfig) -> Optional[ssl.SSLContext]:
    """Create the STARTTLS server context, or None when TLS is disabled."""
    if not tls.enable:
        return None
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(
        str(Path(tls.cert_path).expanduser()),
        str(Path(tls.key_path).expanduser()),
    )
    return context


class SMTPBridge:
    """Wires configuration into a running SMTP listener.

    The listener runs on the caller's event loop, so SDK clients and the
    identifier cache share one loop with every SMTP session.
    """

    def __init__(
        self,
        config: Config,
        router: Optional[PlatformRouter] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """Initialize the bridge.

        Args:
            config: Effective configuration
            router: Pre-built client registry (defaults to build_router(config))
            audit_logger: Audit sink (defaults to one built from config)
        """
        self.config = config
        self.router = router or build_router(config)
        self.audit_logger = audit_logger or AuditLogger.from_config(config.audit_log)
        self.orchestrator = DispatchOrchestrator(
            self.router,
            self.audit_logger,
            AddressResolver(config.platforms.domains),
        )
        self.gateway = SessionGateway(
            NetworkFilter(config.security.allowed_networks),
            self.orchestrator,
            self.audit_logger,
        )
        self.handler = GatewayHandler(self.gateway, max_recipients=config.smtp.max_recipients)
        self.tls_context = build_tls_context(config.tls)
        self._server: Optional[asyncio.AbstractServer] = None

    def protocol_factory(self) -> GatewaySMTP:
        """Create the SMTP protocol instance for one connection."""
        smtp = self.config.smtp
        return GatewaySMTP(
            self.handler,
            hostname=smtp.domain,
            ident=f"email2dm {__version__}",
            data_size_limit=smtp.max_message_bytes,
            timeout=smtp.timeout_seconds,
            tls_context=self.tls_context,
            require_starttls=False,
            authenticator=GatewayAuthenticator(self.gateway),
            auth_require_tls=not smtp.allow_insecure_auth,
            decode_data=False,
        )

    async def check_platforms(self) -> None:
        """Run credential checks; failures are reported but not fatal."""
        results = await self.router.test_connections()
        for platform, result in results.items():
            if isinstance(result, Exception):
                logger.warning(f"{platform.value} connection test failed: {result}")
            else:
                logger.info(f"{platform.value} connection OK: {result}")

    async def start(self, run_checks: bool = True) -> None:
        """Start platform clients and begin listening."""
        await self.router.start()
        if run_checks:
            await self.check_platforms()

        smtp = self.config.smtp
        loop = asyncio.get_running_loop()
        self._server = await loop.create_server(self.protocol_factory, host=smtp.host, port=smtp.port)
        logger.info(
            f"SMTP server listening on {smtp.host}:{smtp.port} "
            f"(domain {smtp.domain}, STARTTLS {'on' if self.tls_context else 'off'})"
        )

    async def stop(self) -> None:
        """Stop listening and release platform clients."""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        await self.router.stop()
        self.audit_logger.close()
        logger.info("SMTP server stopped")

    async def serve_forever(self, run_checks: bool = True) -> None:
        """Serve until SIGINT or SIGTERM."""
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                logger.debug(f"Signal handler for {sig.name} not supported on this platform")

        await self.start(run_checks=run_checks)
        try:
            await stop_event.wait()
            logger.info("Shutdown signal received")
        finally:
            await self.stop()
