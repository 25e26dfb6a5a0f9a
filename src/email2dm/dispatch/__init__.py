"""Recipient resolution and dispatch orchestration.

Architecture:
    AddressResolver -> normalize -> PlatformClient.send_long -> AuditLogger

The orchestrator and resolver live in their own modules; this package
only re-exports the error hierarchy so lower layers can import it
without pulling in the orchestrator.
"""

from email2dm.dispatch.exceptions import (
    AddressError,
    DispatchError,
    InvalidIdentifier,
    MalformedAddress,
    NoRecipient,
    ParseFailure,
    PlatformUnavailable,
    UnsupportedPlatform,
)

__all__ = [
    "AddressError",
    "DispatchError",
    "InvalidIdentifier",
    "MalformedAddress",
    "NoRecipient",
    "ParseFailure",
    "PlatformUnavailable",
    "UnsupportedPlatform",
]
