"""
Unit tests for the email2dm configuration system.
"""

from pathlib import Path

import pytest
import yaml

from email2dm.config import (
    Config,
    ConfigurationError,
    load_config,
)
from email2dm.config.loader import apply_env_overrides, expand_env_refs, load_yaml_file, parse_bool
from email2dm.config.merger import deep_merge, set_nested_value


def write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.dump(data))
    return path


# =============================================================================
# Schema Tests
# =============================================================================


class TestConfigSchema:
    def test_defaults(self):
        config = Config()
        assert config.smtp.host == "0.0.0.0"
        assert config.smtp.port == 2525
        assert config.smtp.max_message_bytes == 1024 * 1024
        assert config.tls.enable is False
        assert config.security.allowed_networks == []
        assert config.platforms.telegram.max_message_length == 4096
        assert config.platforms.telegram.chunk_delay_seconds == 0.5
        assert config.platforms.slack.max_message_length == 40000
        assert config.platforms.slack.chunk_delay_seconds == 1.0
        assert not config.platforms.telegram.enabled

    def test_invalid_port(self):
        with pytest.raises(ValueError):
            Config.model_validate({"smtp": {"port": 70000}})

    def test_networks_from_comma_string(self):
        config = Config.model_validate({"security": {"allowed_networks": "10.0.0.0/8, 127.0.0.1/32"}})
        assert config.security.allowed_networks == ["10.0.0.0/8", "127.0.0.1/32"]

    def test_tls_requires_files(self, temp_dir):
        with pytest.raises(ValueError, match="cert_path"):
            Config.model_validate({"tls": {"enable": True}})
        with pytest.raises(ValueError, match="does not exist"):
            Config.model_validate(
                {"tls": {"enable": True, "cert_path": str(temp_dir / "no.pem"), "key_path": str(temp_dir / "no.key")}}
            )

    def test_tls_with_files(self, temp_dir):
        cert = temp_dir / "cert.pem"
        key = temp_dir / "key.pem"
        cert.write_text("cert")
        key.write_text("key")
        config = Config.model_validate({"tls": {"enable": True, "cert_path": str(cert), "key_path": str(key)}})
        assert config.tls.enable

    def test_domain_aliases(self):
        config = Config.model_validate({"platforms": {"domains": {"TG.Example.com": "telegram"}}})
        assert config.platforms.domains == {"tg.example.com": "telegram"}
        with pytest.raises(ValueError, match="unknown platform"):
            Config.model_validate({"platforms": {"domains": {"x.example.com": "discord"}}})

    def test_log_level(self):
        assert Config.model_validate({"logging": {"level": "debug"}}).logging.level == "DEBUG"
        with pytest.raises(ValueError):
            Config.model_validate({"logging": {"level": "loud"}})


# =============================================================================
# Merger Tests
# =============================================================================


class TestMerger:
    def test_deep_merge(self):
        base = {"smtp": {"host": "0.0.0.0", "port": 2525}, "tls": {"enable": False}}
        result = deep_merge(base, {"smtp": {"port": 25}, "tls": None})
        assert result == {"smtp": {"host": "0.0.0.0", "port": 25}, "tls": {"enable": False}}
        assert base["smtp"]["port"] == 2525

    def test_set_nested_value(self):
        assert set_nested_value({}, "a.b.c", 1) == {"a": {"b": {"c": 1}}}


# =============================================================================
# Loader Tests
# =============================================================================


class TestLoadYaml:
    def test_missing_file(self, temp_dir):
        assert load_yaml_file(temp_dir / "nope.yaml") == {}

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "bad.yaml"
        path.write_text("smtp: [unclosed")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml_file(path)

    def test_not_a_mapping(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_yaml_file(path)


class TestLoadConfig:
    def test_file_values(self, temp_dir):
        path = write_yaml(temp_dir / "config.yaml", {"smtp": {"port": 2626, "domain": "mx.example.com"}})
        config = load_config(path, environ={})
        assert config.smtp.port == 2626
        assert config.smtp.domain == "mx.example.com"
        assert config.smtp.host == "0.0.0.0"

    def test_explicit_missing_file(self, temp_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(temp_dir / "missing.yaml", environ={})

    def test_default_path_missing_is_fine(self):
        assert load_config(environ={}).smtp.port == 2525

    def test_deployment_env(self, temp_dir):
        path = write_yaml(temp_dir / "config.yaml", {"smtp": {"port": 2626}})
        env = {
            "TELEGRAM_BOT_TOKEN": "123:abc",
            "SLACK_BOT_TOKEN": "xoxb-1",
            "SMTP_LISTEN_HOST": "127.0.0.1",
            "SMTP_LISTEN_PORT": "2727",
            "ALLOWED_NETWORKS": "10.0.0.0/8,192.168.0.0/16",
            "TLS_ENABLE": "false",
        }
        config = load_config(path, environ=env)
        assert config.platforms.telegram.bot_token == "123:abc"
        assert config.platforms.slack.enabled
        assert config.smtp.host == "127.0.0.1"
        assert config.smtp.port == 2727
        assert config.security.allowed_networks == ["10.0.0.0/8", "192.168.0.0/16"]
        assert config.tls.enable is False

    @pytest.mark.parametrize("port", ["abc", "0", "65536"])
    def test_bad_port(self, port):
        with pytest.raises(ConfigurationError, match="SMTP_LISTEN_PORT"):
            load_config(environ={"SMTP_LISTEN_PORT": port})

    def test_bad_tls_flag(self):
        with pytest.raises(ConfigurationError, match="TLS_ENABLE"):
            load_config(environ={"TLS_ENABLE": "maybe"})

    def test_tls_enabled_without_certs(self):
        with pytest.raises(ConfigurationError, match="validation failed"):
            load_config(environ={"TLS_ENABLE": "1"})

    def test_skip_env(self):
        config = load_config(skip_env=True, environ={"SMTP_LISTEN_PORT": "2727"})
        assert config.smtp.port == 2525

    def test_env_references(self, temp_dir):
        path = write_yaml(temp_dir / "config.yaml", {"platforms": {"slack": {"bot_token": "${MY_SLACK}"}}})
        config = load_config(path, environ={"MY_SLACK": "xoxb-from-env"})
        assert config.platforms.slack.bot_token == "xoxb-from-env"

    def test_generic_overrides(self):
        config = load_config(
            environ={"EMAIL2DM_SMTP__MAX_RECIPIENTS": "10", "EMAIL2DM_LOGGING__LEVEL": "debug"}
        )
        assert config.smtp.max_recipients == 10
        assert config.logging.level == "DEBUG"


class TestHelpers:
    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("Off", False), ("no", False)])
    def test_parse_bool(self, value, expected):
        assert parse_bool("FLAG", value) is expected

    def test_apply_env_overrides_ignores_single_level(self):
        assert apply_env_overrides({}, {"EMAIL2DM_DEBUG": "1"}) == {}

    def test_expand_env_refs_nested(self):
        data = {"a": ["${X}", {"b": "pre-${X}"}], "c": 3}
        assert expand_env_refs(data, {"X": "v"}) == {"a": ["v", {"b": "pre-v"}], "c": 3}

    def test_unset_reference_becomes_empty(self):
        assert expand_env_refs("${UNSET_VAR}", {}) == ""
