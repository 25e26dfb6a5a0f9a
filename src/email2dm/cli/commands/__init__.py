"""CLI command modules."""

from email2dm.cli.commands import config, platforms

__all__ = ["config", "platforms"]
