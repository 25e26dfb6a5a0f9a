"""SMTP gateway: session bookkeeping and the aiosmtpd binding."""

from email2dm.gateway.session import (
    ConnectionRejected,
    Session,
    SessionGateway,
    SessionState,
    SessionStateError,
    smtp_status,
)

__all__ = [
    "ConnectionRejected",
    "Session",
    "SessionGateway",
    "SessionState",
    "SessionStateError",
    "smtp_status",
]
