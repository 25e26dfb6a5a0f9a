"""Chat platform delivery for email2dm.

This module provides the platform client protocol and the Telegram and
Slack implementations used to deliver normalized emails.

Architecture:
    DispatchOrchestrator -> PlatformRouter -> PlatformClient.send_long

Key Components:
    - PlatformClient: Abstract protocol for platform implementations
    - IdentifierResolver: Username lookup capability (Slack)
    - PlatformRouter: Holds the configured client for each platform
    - IdentifierCache: Username to ID cache shared across sessions
"""

from email2dm.platforms.exceptions import (
    PlatformAPIFailure,
    PlatformError,
    TransportFailure,
    UnknownIdentifier,
)
from email2dm.platforms.models import (
    IdentifierKind,
    PlatformCapabilities,
    PlatformIdentifier,
    PlatformType,
)
from email2dm.platforms.protocol import IdentifierResolver, PlatformClient

__all__ = [
    "IdentifierKind",
    "IdentifierResolver",
    "PlatformAPIFailure",
    "PlatformCapabilities",
    "PlatformClient",
    "PlatformError",
    "PlatformIdentifier",
    "PlatformType",
    "TransportFailure",
    "UnknownIdentifier",
]
