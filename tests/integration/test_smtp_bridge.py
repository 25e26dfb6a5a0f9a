"""End-to-end tests: a real SMTP client talking to the bridge over a socket."""

import asyncio
import smtplib
import ssl
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from email2dm.config.schema import Config
from email2dm.gateway.server import SMTPBridge


@pytest.fixture
def bridge_config() -> Config:
    return Config.model_validate(
        {
            "smtp": {"host": "127.0.0.1", "domain": "bridge.test"},
            "security": {"allowed_networks": ["127.0.0.0/8"]},
        }
    )


@pytest.fixture
def tls_files(temp_dir: Path) -> tuple[Path, Path]:
    """Self-signed certificate and key for localhost."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    cert_path = temp_dir / "cert.pem"
    key_path = temp_dir / "key.pem"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )
    return cert_path, key_path


async def start_listener(bridge: SMTPBridge) -> tuple[asyncio.AbstractServer, int]:
    loop = asyncio.get_running_loop()
    server = await loop.create_server(bridge.protocol_factory, host="127.0.0.1", port=0)
    return server, server.sockets[0].getsockname()[1]


async def stop_listener(server: asyncio.AbstractServer) -> None:
    server.close()
    await server.wait_closed()


def send(port: int, sender: str, recipients: list[str], data: bytes) -> dict:
    with smtplib.SMTP("127.0.0.1", port, timeout=10) as client:
        return client.sendmail(sender, recipients, data)


def send_with_starttls(port: int, sender: str, recipients: list[str], data: bytes) -> dict:
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    with smtplib.SMTP("127.0.0.1", port, timeout=10) as client:
        client.ehlo()
        assert client.has_extn("starttls")
        client.starttls(context=context)
        client.ehlo()
        return client.sendmail(sender, recipients, data)


def send_after_repeated_ehlo(port: int, recipient: str, data: bytes) -> tuple[int, int]:
    with smtplib.SMTP("127.0.0.1", port, timeout=10) as client:
        client.ehlo()
        client.mail("first@example.com")
        client.ehlo()
        code, _ = client.mail("second@example.com")
        client.rcpt(recipient)
        data_code, _ = client.data(data)
        return code, data_code


class TestSMTPBridge:
    @pytest.mark.asyncio
    async def test_delivers_to_telegram(self, bridge_config, router, audit_logger, mock_bot, sample_email):
        bridge = SMTPBridge(bridge_config, router=router, audit_logger=audit_logger)
        server, port = await start_listener(bridge)
        try:
            refused = await asyncio.to_thread(
                send, port, "alice@example.com", ["123456789@telegram"], sample_email
            )
        finally:
            await stop_listener(server)

        assert refused == {}
        mock_bot.send_message.assert_awaited_once()
        kwargs = mock_bot.send_message.call_args.kwargs
        assert kwargs["chat_id"] == 123456789
        assert "hello" in kwargs["text"]

    @pytest.mark.asyncio
    async def test_unsupported_domain_is_permanent_failure(
        self, bridge_config, router, audit_logger, mock_bot, sample_email
    ):
        bridge = SMTPBridge(bridge_config, router=router, audit_logger=audit_logger)
        server, port = await start_listener(bridge)
        try:
            with pytest.raises(smtplib.SMTPDataError) as exc_info:
                await asyncio.to_thread(
                    send, port, "alice@example.com", ["bogus@unknownplatform"], sample_email
                )
        finally:
            await stop_listener(server)

        assert exc_info.value.smtp_code == 550
        mock_bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disallowed_network_is_refused(self, router, audit_logger, sample_email):
        config = Config.model_validate({"security": {"allowed_networks": ["10.0.0.0/8"]}})
        bridge = SMTPBridge(config, router=router, audit_logger=audit_logger)
        server, port = await start_listener(bridge)
        try:
            with pytest.raises(smtplib.SMTPConnectError) as exc_info:
                await asyncio.to_thread(send, port, "alice@example.com", ["1@telegram"], sample_email)
        finally:
            await stop_listener(server)

        assert exc_info.value.smtp_code == 554

    @pytest.mark.asyncio
    async def test_ehlo_restarts_open_transaction(
        self, bridge_config, router, audit_logger, mock_bot, sample_email
    ):
        bridge = SMTPBridge(bridge_config, router=router, audit_logger=audit_logger)
        server, port = await start_listener(bridge)
        try:
            mail_code, data_code = await asyncio.to_thread(
                send_after_repeated_ehlo, port, "123456789@telegram", sample_email
            )
        finally:
            await stop_listener(server)

        assert mail_code == 250
        assert data_code == 250
        mock_bot.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delivers_over_starttls(self, tls_files, router, audit_logger, mock_bot, sample_email):
        cert_path, key_path = tls_files
        config = Config.model_validate(
            {
                "smtp": {"host": "127.0.0.1", "domain": "bridge.test"},
                "security": {"allowed_networks": ["127.0.0.0/8"]},
                "tls": {"enable": True, "cert_path": str(cert_path), "key_path": str(key_path)},
            }
        )
        bridge = SMTPBridge(config, router=router, audit_logger=audit_logger)
        server, port = await start_listener(bridge)
        try:
            refused = await asyncio.to_thread(
                send_with_starttls, port, "alice@example.com", ["123456789@telegram"], sample_email
            )
        finally:
            await stop_listener(server)

        assert refused == {}
        mock_bot.send_message.assert_awaited_once()
