"""
Dispatch exceptions for email2dm.

Defines the message-level failures raised while turning an inbound
email into a chat message.
"""


class DispatchError(Exception):
    """Base exception for dispatch errors."""

    def __init__(self, message: str, platform: str | None = None):
        super().__init__(message)
        self.message = message
        self.platform = platform


class AddressError(DispatchError):
    """The envelope recipient could not be mapped to a destination."""

    pass


class NoRecipient(AddressError):
    """The envelope carried no recipients."""

    def __init__(self) -> None:
        super().__init__("no recipients")


class MalformedAddress(AddressError):
    """The first recipient is not a local@domain address."""

    def __init__(self, address: str):
        super().__init__(f"invalid email format: {address}")
        self.address = address


class UnsupportedPlatform(AddressError):
    """The recipient domain names no known platform."""

    def __init__(self, domain: str):
        super().__init__(f"unsupported platform: {domain}")
        self.domain = domain


class InvalidIdentifier(AddressError):
    """The local part is not a valid identifier for the platform."""

    def __init__(self, identifier: str, platform: str | None = None, reason: str | None = None):
        message = f"invalid {platform or 'platform'} identifier: {identifier}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, platform)
        self.identifier = identifier


class ParseFailure(DispatchError):
    """The message has no parseable header block."""

    pass


class PlatformUnavailable(DispatchError):
    """No client is configured for the resolved platform."""

    def __init__(self, platform: str, reason: str = "client not configured"):
        super().__init__(f"{platform} {reason}", platform)
