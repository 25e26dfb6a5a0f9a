"""Configuration loading and schema for email2dm."""

from email2dm.config.loader import ConfigurationError, load_config
from email2dm.config.schema import Config

__all__ = [
    "Config",
    "ConfigurationError",
    "load_config",
]
