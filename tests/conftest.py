"""
Pytest configuration and fixtures for email2dm tests.
"""

import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from typer.testing import CliRunner

from email2dm.audit.logger import AuditLogger
from email2dm.platforms.adapters.slack import SlackClient
from email2dm.platforms.adapters.telegram import TelegramClient
from email2dm.platforms.router import PlatformRouter


class SlackResponse(dict):
    """Dict-shaped stand-in for slack_sdk response objects."""

    def __init__(self, data: dict, status_code: int = 200):
        super().__init__(data)
        self.status_code = status_code
        self.data = data


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
    """Keep real deployment variables and config files out of tests."""
    for name in (
        "TELEGRAM_BOT_TOKEN",
        "SLACK_BOT_TOKEN",
        "SMTP_LISTEN_HOST",
        "SMTP_LISTEN_PORT",
        "ALLOWED_NETWORKS",
        "TLS_ENABLE",
        "TLS_CERT_PATH",
        "TLS_KEY_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("EMAIL2DM_CONFIG", str(temp_dir / "missing-config.yaml"))


@pytest.fixture
def audit_logger() -> AuditLogger:
    """Audit logger writing to the email2dm.audit logger only."""
    return AuditLogger(syslog=False)


@pytest.fixture
def mock_bot() -> AsyncMock:
    """python-telegram-bot Bot double."""
    bot = AsyncMock()
    bot.send_message.return_value = Mock(message_id=42)
    bot.get_me.return_value = Mock(id=1001, username="email2dm_bot", first_name="email2dm")
    return bot


@pytest.fixture
def telegram_client(mock_bot: AsyncMock) -> TelegramClient:
    """Telegram client backed by the mock bot, without part delays."""
    return TelegramClient(bot_token="123:test", chunk_delay=0, bot=mock_bot)


@pytest.fixture
def mock_web_client() -> AsyncMock:
    """slack_sdk AsyncWebClient double."""
    client = AsyncMock()
    client.chat_postMessage.return_value = SlackResponse({"ok": True, "ts": "1700000000.000100"})
    client.auth_test.return_value = SlackResponse(
        {"ok": True, "user": "email2dm", "user_id": "U0BOT00001", "team": "Acme"}
    )
    client.users_list.return_value = SlackResponse(
        {
            "ok": True,
            "members": [
                {"id": "U0JOHNDOE1", "name": "john.doe", "profile": {"display_name": "John"}},
                {"id": "U0JANEDOE1", "name": "jane", "profile": {"display_name": ""}},
                {"id": "U0GONE0001", "name": "gone", "deleted": True},
            ],
            "response_metadata": {"next_cursor": ""},
        }
    )
    return client


@pytest.fixture
def slack_client(mock_web_client: AsyncMock) -> SlackClient:
    """Slack client backed by the mock web client, without part delays."""
    return SlackClient(bot_token="xoxb-test", chunk_delay=0, web_client=mock_web_client)


@pytest.fixture
def router(telegram_client: TelegramClient, slack_client: SlackClient) -> PlatformRouter:
    """Router with both mocked platform clients registered."""
    registry = PlatformRouter()
    registry.register_client(telegram_client)
    registry.register_client(slack_client)
    return registry


@pytest.fixture
def sample_email() -> bytes:
    """A small plain-text email."""
    return (
        b"From: Alice Example <alice@example.com>\r\n"
        b"To: 123456789@telegram\r\n"
        b"Subject: Test\r\n"
        b"Date: Tue, 14 Nov 2023 22:13:20 +0100\r\n"
        b"\r\n"
        b"hello\r\n"
    )
