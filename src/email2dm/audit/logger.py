"""
Audit logging for email2dm dispatches.

Every connection rejection and every dispatch outcome produces one line

    src=<addr> from=<sender> platform=<platform> user_id=<id> msg=<text>

written to syslog (facility mail). When syslog cannot be opened, the
lines go to the ``email2dm.audit`` logger instead. Events can also be
appended to a JSON Lines file.
"""

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Receives audit lines when syslog is disabled or unavailable.
fallback_logger = logging.getLogger("email2dm.audit")


class AuditEventType(str, Enum):
    """Types of audit events."""

    CONNECTION_REJECTED = "connection_rejected"
    DISPATCH_REJECTED = "dispatch_rejected"
    DISPATCH_STARTED = "dispatch_started"
    DISPATCH_SENT = "dispatch_sent"
    DISPATCH_FAILED = "dispatch_failed"


def format_audit_line(src: str, sender: str, platform: str, user_id: str, msg: str) -> str:
    """Render the fixed key=value audit line."""
    return f"src={src} from={sender} platform={platform} user_id={user_id} msg={msg}"


class AuditLogger:
    """
    Syslog audit logger with an optional JSON Lines copy.
    """

    def __init__(
        self,
        enable: bool = True,
        syslog: bool = True,
        syslog_address: str = "/dev/log",
        facility: str = "mail",
        tag: str = "email2dm",
        path: str | Path | None = None,
    ) -> None:
        """
        Initialize audit logger.

        Args:
            enable: Whether audit lines are written at all
            syslog: Whether to write to syslog
            syslog_address: Unix socket path or "host:port" of the syslog daemon
            facility: Syslog facility name
            tag: Program tag prefixed to each syslog line
            path: Optional JSON Lines file receiving a copy of each event
        """
        self.enable = enable
        self.tag = tag
        self.path = Path(path).expanduser() if path else None
        self._syslog_logger: logging.Logger | None = None
        self._handler: logging.handlers.SysLogHandler | None = None

        if self.enable and syslog:
            self._open_syslog(syslog_address, facility)
        if self.enable and self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: Any) -> "AuditLogger":
        """
        Create audit logger from configuration.

        Args:
            config: AuditLogConfig instance

        Returns:
            Configured AuditLogger
        """
        return cls(
            enable=config.enable,
            syslog=config.syslog,
            syslog_address=config.syslog_address,
            facility=config.facility,
            tag=config.tag,
            path=config.path,
        )

    @property
    def uses_syslog(self) -> bool:
        """Whether lines currently go to syslog."""
        return self._handler is not None

    def _open_syslog(self, address: str, facility: str) -> None:
        host, sep, port = address.rpartition(":")
        target: str | tuple[str, int] = (host, int(port)) if sep and port.isdigit() else address
        try:
            handler = logging.handlers.SysLogHandler(
                address=target,
                facility=logging.handlers.SysLogHandler.facility_names[facility],
            )
        except (OSError, KeyError) as e:
            logger.warning(f"Syslog unavailable ({e}), audit lines go to the application log")
            return

        # Connection errors on unix sockets are swallowed by the handler,
        # leaving a closed socket behind.
        sock = getattr(handler, "socket", None)
        if isinstance(target, str) and (sock is None or sock.fileno() == -1):
            handler.close()
            logger.warning(
                f"Syslog unavailable (cannot connect to {target}), audit lines go to the application log"
            )
            return

        handler.setFormatter(logging.Formatter(f"{self.tag}: %(message)s"))
        syslog_logger = logging.getLogger(f"email2dm.audit.syslog.{id(self)}")
        syslog_logger.setLevel(logging.INFO)
        syslog_logger.propagate = False
        syslog_logger.addHandler(handler)
        self._syslog_logger = syslog_logger
        self._handler = handler

    def _create_event(
        self,
        event_type: AuditEventType,
        src: str,
        sender: str,
        platform: str,
        user_id: str,
        msg: str,
    ) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "src": src,
            "from": sender,
            "platform": platform,
            "user_id": user_id,
            "msg": msg,
        }

    def record(
        self,
        event_type: AuditEventType,
        src: str,
        sender: str = "",
        platform: str = "",
        user_id: str = "",
        msg: str = "",
    ) -> str:
        """
        Write one audit line.

        Args:
            event_type: Type of event
            src: Remote address of the SMTP client
            sender: Envelope sender
            platform: Platform name, empty when unresolved
            user_id: Platform identifier, empty when unresolved
            msg: Human-readable outcome

        Returns:
            The formatted line
        """
        line = format_audit_line(src, sender, platform, user_id, msg)
        if not self.enable:
            return line

        if self._syslog_logger is not None:
            self._syslog_logger.info(line)
        else:
            fallback_logger.info(f"SYSLOG: {line}")

        if self.path:
            event = self._create_event(event_type, src, sender, platform, user_id, msg)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event) + "\n")
        return line

    # =========================================================================
    # Convenience methods
    # =========================================================================

    def log_connection_rejected(self, src: str, reason: str = "address not allowed") -> str:
        return self.record(AuditEventType.CONNECTION_REJECTED, src, msg=f"Connection rejected: {reason}")

    def log_invalid_destination(
        self, src: str, sender: str, error: str, platform: str = "", user_id: str = ""
    ) -> str:
        return self.record(
            AuditEventType.DISPATCH_REJECTED,
            src,
            sender,
            platform,
            user_id,
            f"Invalid destination: {error}",
        )

    def log_parse_error(self, src: str, sender: str, platform: str, user_id: str, error: str) -> str:
        return self.record(
            AuditEventType.DISPATCH_REJECTED, src, sender, platform, user_id, f"Parse error: {error}"
        )

    def log_dispatch_started(self, src: str, sender: str, platform: str, user_id: str) -> str:
        return self.record(
            AuditEventType.DISPATCH_STARTED, src, sender, platform, user_id, "Processing email"
        )

    def log_dispatch_failed(self, src: str, sender: str, platform: str, user_id: str, error: str) -> str:
        return self.record(
            AuditEventType.DISPATCH_FAILED, src, sender, platform, user_id, f"Send failed: {error}"
        )

    def log_dispatch_sent(self, src: str, sender: str, platform: str, user_id: str) -> str:
        return self.record(
            AuditEventType.DISPATCH_SENT, src, sender, platform, user_id, "Email sent successfully"
        )

    def close(self) -> None:
        """Close the syslog handler."""
        if self._handler is not None and self._syslog_logger is not None:
            self._syslog_logger.removeHandler(self._handler)
            self._handler.close()
        self._handler = None
        self._syslog_logger = None
