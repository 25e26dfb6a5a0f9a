"""
email2dm - SMTP to chat direct-message bridge

Accepts inbound mail over SMTP and forwards each message to a Telegram
chat or a Slack user/channel encoded in the recipient address.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("email2dm")
except PackageNotFoundError:
    __version__ = "0.3.0"

__all__ = [
    "__version__",
]
