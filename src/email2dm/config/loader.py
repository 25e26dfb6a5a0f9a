"""
Configuration loader for email2dm.

Loads and merges configuration from multiple sources:
1. Default values
2. YAML config file (~/.email2dm/config.yaml, EMAIL2DM_CONFIG or --config)
3. Deployment environment variables (TELEGRAM_BOT_TOKEN, SMTP_LISTEN_PORT, ...)
4. Generic overrides (EMAIL2DM_<SECTION>__<KEY>)

String values may reference environment variables as ${NAME}.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from email2dm.config.merger import deep_merge, set_nested_value
from email2dm.config.schema import Config

ENV_PREFIX = "EMAIL2DM_"
CONFIG_PATH_ENV = "EMAIL2DM_CONFIG"

# Deployment variables and the config keys they set.
DEPLOYMENT_ENV_VARS: dict[str, str] = {
    "TELEGRAM_BOT_TOKEN": "platforms.telegram.bot_token",
    "SLACK_BOT_TOKEN": "platforms.slack.bot_token",
    "SMTP_LISTEN_HOST": "smtp.host",
    "SMTP_LISTEN_PORT": "smtp.port",
    "ALLOWED_NETWORKS": "security.allowed_networks",
    "TLS_ENABLE": "tls.enable",
    "TLS_CERT_PATH": "tls.cert_path",
    "TLS_KEY_PATH": "tls.key_path",
}

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")
_ENV_REF_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def get_default_config_path() -> Path:
    """Return the config file path, honouring EMAIL2DM_CONFIG."""
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".email2dm" / "config.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed configuration dictionary, empty if the file does not exist.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return content


def parse_bool(name: str, value: str) -> bool:
    """Parse a boolean flag strictly, rejecting anything unrecognised."""
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be one of true/false/1/0/yes/no/on/off, got {value!r}")


def _parse_env_value(value: str) -> Any:
    """
    Parse a generic override value to the appropriate type.

    Args:
        value: String value from environment.

    Returns:
        Parsed value (bool, int, float, list, or string).
    """
    # "1" and "0" stay integers here
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False
    if re.match(r"^-?\d+$", value):
        return int(value)
    if re.match(r"^-?\d+\.\d+$", value):
        return float(value)
    if "," in value:
        return [item.strip() for item in value.split(",")]
    return value


def apply_deployment_env(config: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    """
    Apply the deployment environment variables.

    Args:
        config: Configuration dictionary to modify.
        environ: Environment mapping.

    Returns:
        Configuration with the variables applied.

    Raises:
        ConfigurationError: If a variable has an invalid value.
    """
    for name, key_path in DEPLOYMENT_ENV_VARS.items():
        value = environ.get(name)
        if value is None or value == "":
            continue

        parsed: Any = value
        if name == "SMTP_LISTEN_PORT":
            try:
                parsed = int(value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid SMTP_LISTEN_PORT: {value!r}") from e
            if not 1 <= parsed <= 65535:
                raise ConfigurationError(f"SMTP_LISTEN_PORT out of range: {parsed}")
        elif name == "TLS_ENABLE":
            parsed = parse_bool(name, value)
        elif name == "ALLOWED_NETWORKS":
            parsed = [item.strip() for item in value.split(",") if item.strip()]

        config = set_nested_value(config, key_path, parsed)

    return config


def apply_env_overrides(config: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    """
    Apply generic EMAIL2DM_<SECTION>__<KEY> overrides.

    Double underscores separate nesting levels, so keys that contain a
    single underscore stay intact: EMAIL2DM_SMTP__MAX_RECIPIENTS=10 sets
    smtp.max_recipients.
    """
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or key == CONFIG_PATH_ENV:
            continue
        parts = [p for p in key[len(ENV_PREFIX) :].lower().split("__") if p]
        if len(parts) < 2:
            continue
        config = set_nested_value(config, ".".join(parts), _parse_env_value(value))
    return config


def expand_env_refs(value: Any, environ: dict[str, str]) -> Any:
    """Replace ${NAME} references in all string values, recursively."""
    if isinstance(value, str):
        return _ENV_REF_RE.sub(lambda m: environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: expand_env_refs(v, environ) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_refs(v, environ) for v in value]
    return value


def load_config(
    config_path: Path | None = None,
    skip_env: bool = False,
    environ: dict[str, str] | None = None,
) -> Config:
    """
    Load and merge configuration from all sources.

    Args:
        config_path: YAML file to load. Defaults to get_default_config_path().
        skip_env: Skip environment variable overrides.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Merged and validated Config object.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    env = dict(os.environ if environ is None else environ)

    # 1. Defaults
    config_dict = Config().model_dump()

    # 2. Config file
    path = config_path or get_default_config_path()
    if config_path is not None and not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    file_config = expand_env_refs(load_yaml_file(path), env)
    config_dict = deep_merge(config_dict, file_config)

    # 3. Environment
    if not skip_env:
        config_dict = apply_deployment_env(config_dict, env)
        config_dict = apply_env_overrides(config_dict, env)

    # 4. Validate
    try:
        return Config.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
