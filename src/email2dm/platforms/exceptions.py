"""
Platform delivery exceptions for email2dm.

Every error raised by a platform client carries the platform name and,
where one was returned, the platform's own error text.
"""


class PlatformError(Exception):
    """Base exception for platform client errors."""

    def __init__(
        self,
        message: str,
        platform: str | None = None,
        chunk: int | None = None,
        total_chunks: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.platform = platform
        self.chunk = chunk
        self.total_chunks = total_chunks

    def __str__(self) -> str:
        if self.chunk is not None and self.total_chunks is not None:
            return f"chunk {self.chunk}/{self.total_chunks}: {self.message}"
        return self.message


class TransportFailure(PlatformError):
    """Network error or timeout before the platform answered."""

    pass


class PlatformAPIFailure(PlatformError):
    """The platform answered with an error (non-2xx or ok=false)."""

    def __init__(
        self,
        message: str,
        platform: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message, platform)
        self.status_code = status_code


class UnknownIdentifier(PlatformError):
    """A username lookup found no matching account."""

    def __init__(self, identifier: str, platform: str | None = None):
        super().__init__(f"user not found: {identifier}", platform)
        self.identifier = identifier
