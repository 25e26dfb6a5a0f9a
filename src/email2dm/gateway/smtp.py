"""
aiosmtpd binding for the session gateway.

GatewaySMTP admits or rejects each connection before the greeting and
logs the session out when the peer disconnects; GatewayHandler forwards
the envelope commands to the SessionGateway.
"""

import asyncio
import logging
from typing import Any

from aiosmtpd.smtp import SMTP, AuthResult, Envelope, LoginPassword
from aiosmtpd.smtp import Session as SMTPSession

from email2dm.gateway.session import (
    ConnectionRejected,
    Session,
    SessionGateway,
    SessionStateError,
    smtp_status,
)
from email2dm.security.network import format_address

logger = logging.getLogger(__name__)


def _gateway_session(session: SMTPSession) -> Session | None:
    return getattr(session, "gateway_session", None)


def _single_line(status: str) -> str:
    return " ".join(status.split())


class GatewayHandler:
    """aiosmtpd handler forwarding envelope commands to a SessionGateway."""

    def __init__(self, gateway: SessionGateway, max_recipients: int = 50):
        self.gateway = gateway
        self.max_recipients = max_recipients

    async def handle_HELO(self, server: SMTP, session: SMTPSession, envelope: Envelope, hostname: str) -> str:
        self._restart(session)
        session.host_name = hostname
        return f"250 {server.hostname}"

    async def handle_EHLO(
        self,
        server: SMTP,
        session: SMTPSession,
        envelope: Envelope,
        hostname: str,
        responses: list[str],
    ) -> list[str]:
        self._restart(session)
        session.host_name = hostname
        return responses

    def _restart(self, session: SMTPSession) -> None:
        # HELO and EHLO abort any open transaction (RFC 5321 4.1.4)
        gateway_session = _gateway_session(session)
        if gateway_session is not None:
            self.gateway.reset(gateway_session)

    async def handle_MAIL(
        self,
        server: SMTP,
        session: SMTPSession,
        envelope: Envelope,
        address: str,
        mail_options: list[str],
    ) -> str:
        gateway_session = _gateway_session(session)
        if gateway_session is None:
            return "421 4.3.0 Session not available"
        try:
            self.gateway.set_sender(gateway_session, address)
        except SessionStateError as e:
            return f"503 5.5.1 {e}"

        envelope.mail_from = address
        envelope.mail_options.extend(mail_options)
        return "250 OK"

    async def handle_RCPT(
        self,
        server: SMTP,
        session: SMTPSession,
        envelope: Envelope,
        address: str,
        rcpt_options: list[str],
    ) -> str:
        gateway_session = _gateway_session(session)
        if gateway_session is None:
            return "421 4.3.0 Session not available"
        if len(envelope.rcpt_tos) >= self.max_recipients:
            return "452 4.5.3 Too many recipients"
        try:
            self.gateway.add_recipient(gateway_session, address)
        except SessionStateError as e:
            return f"503 5.5.1 {e}"

        envelope.rcpt_tos.append(address)
        envelope.rcpt_options.extend(rcpt_options)
        return "250 OK"

    async def handle_DATA(self, server: SMTP, session: SMTPSession, envelope: Envelope) -> str:
        gateway_session = _gateway_session(session)
        if gateway_session is None:
            return "421 4.3.0 Session not available"

        data = envelope.original_content or b""
        try:
            result = await self.gateway.receive_data(gateway_session, data)
        except SessionStateError as e:
            return f"503 5.5.1 {e}"
        return _single_line(smtp_status(result))

    async def handle_RSET(self, server: SMTP, session: SMTPSession, envelope: Envelope) -> str:
        gateway_session = _gateway_session(session)
        if gateway_session is not None:
            try:
                self.gateway.reset(gateway_session)
            except SessionStateError as e:
                return f"503 5.5.1 {e}"
        return "250 OK"

    async def handle_QUIT(self, server: SMTP, session: SMTPSession, envelope: Envelope) -> str:
        gateway_session = _gateway_session(session)
        if gateway_session is not None:
            self.gateway.logout(gateway_session)
        return "221 Bye"


class GatewayAuthenticator:
    """Accepts every AUTH attempt; admission is by source network only."""

    def __init__(self, gateway: SessionGateway):
        self.gateway = gateway

    def __call__(
        self,
        server: SMTP,
        session: SMTPSession,
        envelope: Envelope,
        mechanism: str,
        auth_data: Any,
    ) -> AuthResult:
        gateway_session = _gateway_session(session)
        if gateway_session is None:
            return AuthResult(success=False, handled=False)

        username, password = "", ""
        if isinstance(auth_data, LoginPassword):
            username = auth_data.login.decode("utf-8", "replace")
            password = auth_data.password.decode("utf-8", "replace")
        success = self.gateway.authenticate(gateway_session, username, password)
        return AuthResult(success=success, auth_data=username)


class GatewaySMTP(SMTP):
    """SMTP protocol instance that runs admission control on connect.

    The gateway session lives on the protocol instance, because aiosmtpd
    replaces its own session object after a STARTTLS handshake.
    """

    event_handler: GatewayHandler
    gateway_session: Session | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        super().connection_made(transport)
        if self.gateway_session is not None:
            # STARTTLS: the client starts over on the encrypted channel
            self.event_handler.gateway.reset(self.gateway_session)
            self.session.gateway_session = self.gateway_session

    async def _handle_client(self) -> None:
        remote_address = format_address(self.session.peer)
        try:
            self.gateway_session = self.event_handler.gateway.connect(remote_address)
        except ConnectionRejected:
            await self.push("554 5.7.1 Access denied")
            self.transport.close()
            return
        self.session.gateway_session = self.gateway_session
        await super()._handle_client()

    def connection_lost(self, error: Exception | None) -> None:
        if self.gateway_session is not None:
            self.event_handler.gateway.logout(self.gateway_session)
        super().connection_lost(error)
