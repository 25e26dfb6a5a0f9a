"""
Pydantic configuration schema for email2dm.

This module defines all configuration models with validation.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from email2dm.platforms.models import PlatformType

# =============================================================================
# SMTP Listener Configuration
# =============================================================================


class SMTPConfig(BaseModel):
    """SMTP listener configuration."""

    model_config = ConfigDict(extra="allow")

    host: str = "0.0.0.0"
    port: int = Field(default=2525, ge=1, le=65535)
    domain: str = "localhost"
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_message_bytes: int = Field(default=1024 * 1024, gt=0)
    max_recipients: int = Field(default=50, ge=1)
    allow_insecure_auth: bool = True


class TLSConfig(BaseModel):
    """STARTTLS configuration."""

    enable: bool = False
    cert_path: str = ""
    key_path: str = ""

    @model_validator(mode="after")
    def check_files(self) -> "TLSConfig":
        """Require an existing certificate and key when TLS is enabled."""
        if not self.enable:
            return self
        for name in ("cert_path", "key_path"):
            value = getattr(self, name)
            if not value:
                raise ValueError(f"tls.{name} is required when TLS is enabled")
            if not Path(value).expanduser().is_file():
                raise ValueError(f"tls.{name} does not exist: {value}")
        return self


# =============================================================================
# Security Configuration
# =============================================================================


class SecurityConfig(BaseModel):
    """Connection admission configuration."""

    model_config = ConfigDict(extra="allow")

    # CIDR ranges allowed to connect; empty admits everyone
    allowed_networks: list[str] = Field(default_factory=list)

    @field_validator("allowed_networks", mode="before")
    @classmethod
    def split_networks(cls, value: object) -> object:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class AuditLogConfig(BaseModel):
    """Audit logging configuration."""

    enable: bool = True
    syslog: bool = True
    syslog_address: str = "/dev/log"
    facility: str = "mail"
    tag: str = "email2dm"
    path: str | None = None  # optional JSON Lines copy


# =============================================================================
# Platform Configuration
# =============================================================================


class PlatformClientConfig(BaseModel):
    """Base configuration for platform clients."""

    bot_token: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)
    chunk_delay_seconds: float = Field(default=0.5, ge=0)
    max_message_length: int = Field(default=4096, gt=64)

    @property
    def enabled(self) -> bool:
        """A client is built only when a token is configured."""
        return bool(self.bot_token)


class TelegramConfig(PlatformClientConfig):
    """Telegram bot configuration."""

    chunk_delay_seconds: float = Field(default=0.5, ge=0)
    max_message_length: int = Field(default=4096, gt=64)


class SlackConfig(PlatformClientConfig):
    """Slack bot configuration."""

    chunk_delay_seconds: float = Field(default=1.0, ge=0)
    max_message_length: int = Field(default=40000, gt=64)


class PlatformsConfig(BaseModel):
    """Configuration for all platform clients."""

    model_config = ConfigDict(extra="allow")

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    # Extra recipient domains, e.g. {"tg.example.com": "telegram"}
    domains: dict[str, str] = Field(default_factory=dict)

    @field_validator("domains")
    @classmethod
    def check_domains(cls, value: dict[str, str]) -> dict[str, str]:
        known = {p.value for p in PlatformType}
        for alias, platform in value.items():
            if platform not in known:
                raise ValueError(f"domain {alias!r} maps to unknown platform {platform!r}")
        return {alias.lower(): platform for alias, platform in value.items()}


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Application logging configuration."""

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level


# =============================================================================
# Root Configuration
# =============================================================================


class Config(BaseModel):
    """Root configuration model for email2dm."""

    model_config = ConfigDict(extra="allow")

    smtp: SMTPConfig = Field(default_factory=SMTPConfig)
    tls: TLSConfig = Field(default_factory=TLSConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    audit_log: AuditLogConfig = Field(default_factory=AuditLogConfig)
    platforms: PlatformsConfig = Field(default_factory=PlatformsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
