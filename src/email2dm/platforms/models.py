"""Data models for chat platform delivery."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PlatformType(str, Enum):
    """Supported chat platforms."""

    TELEGRAM = "telegram"
    SLACK = "slack"


class IdentifierKind(str, Enum):
    """Shape of a platform identifier taken from a recipient local part."""

    CHAT_ID = "chat_id"  # Telegram numeric chat id
    GROUP = "group"  # Telegram g<digits> group notation
    USER_ID = "user_id"  # Slack U...
    CHANNEL_ID = "channel_id"  # Slack C...
    CHANNEL_NAME = "channel_name"  # Slack #name
    USERNAME = "username"  # Slack handle, needs a directory lookup


class PlatformCapabilities(BaseModel):
    """Delivery limits and formatting of a platform."""

    max_message_length: int = Field(default=4096, gt=0)
    chunk_delay: float = Field(default=0.5, ge=0)
    part_marker: str = "[Part {n}]\n"
    markdown_flavor: str | None = None  # e.g., "html", "mrkdwn"

    def marker_for(self, part: int) -> str:
        """Render the continuation marker for a 1-based part number."""
        return self.part_marker.format(n=part)


class PlatformIdentifier(BaseModel):
    """Platform and raw identifier decoded from the first envelope recipient."""

    model_config = ConfigDict(frozen=True)

    platform: PlatformType
    raw: str = Field(min_length=1)
    kind: IdentifierKind

    def __str__(self) -> str:
        """String representation for logging."""
        return f"{self.platform.value}:{self.raw}"
