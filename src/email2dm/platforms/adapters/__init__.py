"""Platform client implementations."""

from email2dm.platforms.adapters.slack import SlackClient
from email2dm.platforms.adapters.telegram import TelegramClient
from email2dm.platforms.models import PlatformType
from email2dm.platforms.protocol import PlatformClient

CLIENT_CLASSES: dict[PlatformType, type[PlatformClient]] = {
    PlatformType.TELEGRAM: TelegramClient,
    PlatformType.SLACK: SlackClient,
}

__all__ = [
    "CLIENT_CLASSES",
    "SlackClient",
    "TelegramClient",
]
