"""Dispatch orchestration.

This module turns one received email into one chat delivery:
resolve the recipient, normalize the content, finalize the destination,
format for the platform and send, writing an audit line for the outcome.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from email2dm.audit.logger import AuditLogger
from email2dm.dispatch.exceptions import AddressError, DispatchError, ParseFailure, PlatformUnavailable
from email2dm.dispatch.resolver import AddressResolver
from email2dm.mail.normalizer import normalize
from email2dm.platforms.exceptions import PlatformError
from email2dm.platforms.models import IdentifierKind, PlatformIdentifier, PlatformType
from email2dm.platforms.protocol import IdentifierResolver, PlatformClient
from email2dm.platforms.router import PlatformRouter

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of processing one message."""

    ok: bool
    platform: Optional[PlatformType] = None
    identifier: Optional[str] = None
    destination: Optional[str] = None
    chunks_sent: int = 0
    error: Optional[Exception] = None

    @property
    def message(self) -> str:
        """Short description for protocol replies and logs."""
        if self.ok:
            return "Message accepted for delivery"
        return str(self.error) if self.error else "dispatch failed"


class DispatchOrchestrator:
    """Runs the per-message dispatch pipeline.

    This class handles:
    1. Recipient resolution (first recipient only)
    2. Content normalization
    3. Destination finalization (group rewrite, username lookup)
    4. Platform formatting and chunked delivery
    5. Audit logging of every outcome

    Message-level failures are audited and returned in the result; they
    never propagate to the caller.
    """

    def __init__(
        self,
        router: PlatformRouter,
        audit_logger: AuditLogger,
        resolver: Optional[AddressResolver] = None,
    ):
        """Initialize the orchestrator.

        Args:
            router: Registry of configured platform clients
            audit_logger: Sink for audit lines
            resolver: Recipient resolver (defaults to the built-in domain table)
        """
        self._router = router
        self._audit = audit_logger
        self._resolver = resolver or AddressResolver()

    @property
    def resolver(self) -> AddressResolver:
        return self._resolver

    async def process_message(
        self,
        raw: bytes,
        sender: str,
        recipients: list[str],
        remote_address: str,
    ) -> DispatchResult:
        """Dispatch one received email.

        Args:
            raw: Message content from the DATA phase
            sender: Envelope sender
            recipients: Envelope recipients in the order received
            remote_address: Address of the SMTP client

        Returns:
            Result describing the delivery or the failure
        """
        try:
            target = self._resolver.resolve(recipients)
        except AddressError as e:
            logger.warning(f"Rejecting message from {sender} ({remote_address}): {e}")
            self._audit.log_invalid_destination(remote_address, sender, str(e))
            return DispatchResult(ok=False, error=e)

        platform = target.platform.value
        try:
            message = normalize(raw)
        except ParseFailure as e:
            logger.warning(f"Cannot parse message from {sender} for {target}: {e}")
            self._audit.log_parse_error(remote_address, sender, platform, target.raw, str(e))
            return DispatchResult(ok=False, platform=target.platform, identifier=target.raw, error=e)

        self._audit.log_dispatch_started(remote_address, sender, platform, target.raw)

        result = DispatchResult(ok=False, platform=target.platform, identifier=target.raw)
        try:
            client = self._get_client(target.platform)
            result.destination = await self._finalize(client, target)
            text = client.format_message(message)
            result.chunks_sent = await client.send_long(text, result.destination)
        except (DispatchError, PlatformError) as e:
            logger.error(f"Delivery to {target} failed: {e}")
            result.error = e
        except Exception as e:
            logger.error(f"Unexpected error delivering to {target}: {e}", exc_info=True)
            result.error = e

        if result.error is not None:
            self._audit.log_dispatch_failed(remote_address, sender, platform, target.raw, str(result.error))
            return result

        result.ok = True
        logger.info(f"Delivered email from {sender} to {target} in {result.chunks_sent} message(s)")
        self._audit.log_dispatch_sent(remote_address, sender, platform, target.raw)
        return result

    def _get_client(self, platform: PlatformType) -> PlatformClient:
        client = self._router.get_client(platform)
        if client is None:
            raise PlatformUnavailable(platform.value)
        return client

    async def _finalize(self, client: PlatformClient, target: PlatformIdentifier) -> str:
        """Turn a validated identifier into a sendable destination."""
        if target.kind == IdentifierKind.GROUP:
            return "-" + target.raw[1:]
        if target.kind == IdentifierKind.USERNAME:
            if not isinstance(client, IdentifierResolver):
                raise PlatformUnavailable(target.platform.value, "cannot resolve usernames")
            return await client.resolve_identifier(target.raw)
        return target.raw
