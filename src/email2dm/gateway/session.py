"""Per-connection SMTP session bookkeeping.

The session gateway is independent of the protocol engine: the aiosmtpd
binding in ``email2dm.gateway.smtp`` calls it for every protocol event.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from email2dm.audit.logger import AuditLogger
from email2dm.dispatch.exceptions import AddressError, ParseFailure
from email2dm.dispatch.orchestrator import DispatchOrchestrator, DispatchResult
from email2dm.platforms.exceptions import TransportFailure, UnknownIdentifier
from email2dm.security.network import NetworkFilter

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of an SMTP session."""

    IDLE = "idle"
    TRANSACTION_OPEN = "transaction_open"
    TERMINATED = "terminated"


class ConnectionRejected(Exception):
    """Raised when a peer is not admitted by the network filter."""

    def __init__(self, remote_address: str, reason: str | None = None):
        super().__init__(f"connection from {remote_address} rejected: {reason or 'not allowed'}")
        self.remote_address = remote_address
        self.reason = reason


class SessionStateError(Exception):
    """Raised when a protocol event arrives in the wrong session state."""

    pass


@dataclass
class Session:
    """Envelope state of one SMTP connection."""

    remote_address: str
    sender: str | None = None
    recipients: list[str] = field(default_factory=list)
    state: SessionState = SessionState.IDLE

    def clear_envelope(self) -> None:
        self.sender = None
        self.recipients = []
        if self.state != SessionState.TERMINATED:
            self.state = SessionState.IDLE


class SessionGateway:
    """Maps protocol events onto sessions and hands messages to dispatch."""

    def __init__(
        self,
        network_filter: NetworkFilter,
        orchestrator: DispatchOrchestrator,
        audit_logger: AuditLogger,
    ):
        """Initialize the gateway.

        Args:
            network_filter: Admission control for new connections
            orchestrator: Pipeline invoked for each received message
            audit_logger: Sink for connection rejection lines
        """
        self._filter = network_filter
        self._orchestrator = orchestrator
        self._audit = audit_logger

    def connect(self, remote_address: str) -> Session:
        """Admit a new connection.

        Args:
            remote_address: Peer address, e.g. "192.0.2.10:53412"

        Returns:
            A new idle session

        Raises:
            ConnectionRejected: If the peer is outside the allowed networks
        """
        check = self._filter.check(remote_address)
        if not check.allowed:
            logger.warning(f"Rejected connection from {remote_address}: {check.reason}")
            self._audit.log_connection_rejected(remote_address, check.reason or "address not allowed")
            raise ConnectionRejected(remote_address, check.reason)

        logger.debug(f"Accepted connection from {remote_address}")
        return Session(remote_address=remote_address)

    def authenticate(self, session: Session, username: str, password: str) -> bool:
        """Accept any credentials; access is controlled by network only."""
        self._ensure_active(session)
        logger.debug(f"AUTH accepted for {username!r} from {session.remote_address}")
        return True

    def set_sender(self, session: Session, address: str) -> None:
        """Open a transaction with the envelope sender (MAIL FROM)."""
        self._ensure_active(session)
        if session.state == SessionState.TRANSACTION_OPEN:
            raise SessionStateError("nested MAIL command")
        session.sender = address
        session.recipients = []
        session.state = SessionState.TRANSACTION_OPEN

    def add_recipient(self, session: Session, address: str) -> None:
        """Append an envelope recipient (RCPT TO)."""
        self._ensure_active(session)
        if session.state != SessionState.TRANSACTION_OPEN:
            raise SessionStateError("need MAIL before RCPT")
        session.recipients.append(address)

    async def receive_data(self, session: Session, data: bytes) -> DispatchResult:
        """Dispatch the message body (DATA) and reset the envelope.

        The envelope is cleared whatever the outcome; the connection stays
        usable for further transactions.
        """
        self._ensure_active(session)
        if session.state != SessionState.TRANSACTION_OPEN:
            raise SessionStateError("need MAIL before DATA")

        try:
            return await self._orchestrator.process_message(
                data,
                session.sender or "",
                list(session.recipients),
                session.remote_address,
            )
        finally:
            session.clear_envelope()

    def reset(self, session: Session) -> None:
        """Abort the current transaction (RSET)."""
        self._ensure_active(session)
        session.clear_envelope()

    def logout(self, session: Session) -> None:
        """Terminate the session (QUIT or disconnect)."""
        session.clear_envelope()
        session.state = SessionState.TERMINATED

    @staticmethod
    def _ensure_active(session: Session) -> None:
        if session.state == SessionState.TERMINATED:
            raise SessionStateError("session terminated")


def smtp_status(result: DispatchResult) -> str:
    """Map a dispatch result to an SMTP reply line.

    Transport failures are temporary (4xx) so the sending MTA may retry;
    everything else is permanent.
    """
    if result.ok:
        return "250 2.0.0 Message accepted for delivery"

    error = result.error
    if isinstance(error, TransportFailure):
        return f"451 4.4.0 Temporary delivery failure: {error}"
    if isinstance(error, (AddressError, UnknownIdentifier)):
        return f"550 5.1.1 {error}"
    if isinstance(error, ParseFailure):
        return f"554 5.6.0 Message parse error: {error}"
    return f"554 5.0.0 Delivery failed: {result.message}"
