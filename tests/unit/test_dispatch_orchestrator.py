"""Unit tests for the dispatch orchestrator."""

import logging

import pytest
from telegram.error import NetworkError

from email2dm.dispatch.exceptions import (
    NoRecipient,
    ParseFailure,
    PlatformUnavailable,
    UnsupportedPlatform,
)
from email2dm.dispatch.orchestrator import DispatchOrchestrator
from email2dm.platforms.exceptions import TransportFailure, UnknownIdentifier
from email2dm.platforms.models import PlatformType
from email2dm.platforms.router import PlatformRouter

REMOTE = "192.0.2.10:53412"
SENDER = "alice@example.com"


@pytest.fixture
def orchestrator(router, audit_logger) -> DispatchOrchestrator:
    return DispatchOrchestrator(router, audit_logger)


def audit_lines(caplog) -> list[str]:
    return [r.getMessage() for r in caplog.records if r.name == "email2dm.audit"]


class TestProcessMessage:
    """Test DispatchOrchestrator.process_message."""

    @pytest.mark.asyncio
    async def test_telegram_delivery(self, orchestrator, mock_bot, sample_email, caplog):
        caplog.set_level(logging.INFO, logger="email2dm.audit")

        result = await orchestrator.process_message(sample_email, SENDER, ["123456789@telegram"], REMOTE)

        assert result.ok
        assert result.platform == PlatformType.TELEGRAM
        assert result.destination == "123456789"
        assert result.chunks_sent == 1
        mock_bot.send_message.assert_awaited_once()
        assert "hello" in mock_bot.send_message.call_args.kwargs["text"]

        lines = audit_lines(caplog)
        assert any("msg=Processing email" in line for line in lines)
        sent = [line for line in lines if "Email sent successfully" in line]
        assert len(sent) == 1
        assert "platform=telegram" in sent[0]
        assert "user_id=123456789" in sent[0]
        assert f"src={REMOTE}" in sent[0]
        assert f"from={SENDER}" in sent[0]

    @pytest.mark.asyncio
    async def test_unknown_platform(self, orchestrator, mock_bot, mock_web_client, sample_email, caplog):
        caplog.set_level(logging.INFO, logger="email2dm.audit")

        result = await orchestrator.process_message(sample_email, SENDER, ["bogus@unknownplatform"], REMOTE)

        assert not result.ok
        assert isinstance(result.error, UnsupportedPlatform)
        mock_bot.send_message.assert_not_awaited()
        mock_web_client.chat_postMessage.assert_not_awaited()

        lines = audit_lines(caplog)
        assert len(lines) == 1
        assert "Invalid destination" in lines[0]
        assert "platform= user_id= " in lines[0]

    @pytest.mark.asyncio
    async def test_no_recipients(self, orchestrator, sample_email):
        result = await orchestrator.process_message(sample_email, SENDER, [], REMOTE)
        assert isinstance(result.error, NoRecipient)

    @pytest.mark.asyncio
    async def test_parse_failure_is_audited_with_destination(self, orchestrator, mock_bot, caplog):
        caplog.set_level(logging.INFO, logger="email2dm.audit")

        result = await orchestrator.process_message(b"no headers here\n", SENDER, ["42@telegram"], REMOTE)

        assert isinstance(result.error, ParseFailure)
        mock_bot.send_message.assert_not_awaited()
        lines = audit_lines(caplog)
        assert "Parse error" in lines[0]
        assert "platform=telegram user_id=42" in lines[0]

    @pytest.mark.asyncio
    async def test_group_notation_rewritten(self, orchestrator, mock_bot, sample_email):
        result = await orchestrator.process_message(sample_email, SENDER, ["g123456@telegram"], REMOTE)

        assert result.ok
        assert result.destination == "-123456"
        assert mock_bot.send_message.call_args.kwargs["chat_id"] == -123456

    @pytest.mark.asyncio
    async def test_slack_username_resolved(self, orchestrator, mock_web_client, sample_email):
        result = await orchestrator.process_message(sample_email, SENDER, ["john.doe@slack"], REMOTE)

        assert result.ok
        assert result.identifier == "john.doe"
        assert result.destination == "U0JOHNDOE1"
        assert mock_web_client.chat_postMessage.call_args.kwargs["channel"] == "U0JOHNDOE1"

    @pytest.mark.asyncio
    async def test_slack_unknown_username(self, orchestrator, mock_web_client, sample_email, caplog):
        caplog.set_level(logging.INFO, logger="email2dm.audit")

        result = await orchestrator.process_message(sample_email, SENDER, ["nobody@slack"], REMOTE)

        assert isinstance(result.error, UnknownIdentifier)
        mock_web_client.chat_postMessage.assert_not_awaited()
        assert any("Send failed" in line for line in audit_lines(caplog))

    @pytest.mark.asyncio
    async def test_send_failure_is_returned_not_raised(self, orchestrator, mock_bot, sample_email, caplog):
        caplog.set_level(logging.INFO, logger="email2dm.audit")
        mock_bot.send_message.side_effect = NetworkError("connection reset")

        result = await orchestrator.process_message(sample_email, SENDER, ["42@telegram"], REMOTE)

        assert not result.ok
        assert isinstance(result.error, TransportFailure)
        lines = audit_lines(caplog)
        assert "Send failed: connection reset" in lines[-1]
        assert not any("Email sent successfully" in line for line in lines)

    @pytest.mark.asyncio
    async def test_unconfigured_platform(self, telegram_client, audit_logger, sample_email):
        router = PlatformRouter()
        router.register_client(telegram_client)
        orchestrator = DispatchOrchestrator(router, audit_logger)

        result = await orchestrator.process_message(sample_email, SENDER, ["C1234567890@slack"], REMOTE)

        assert isinstance(result.error, PlatformUnavailable)
