"""
Main Typer application for the email2dm CLI.

This module defines the root CLI application and registers all command groups.
"""

import asyncio
import ssl
from pathlib import Path
from typing import Annotated, Optional

import typer

from email2dm import __version__
from email2dm.cli.commands import config, platforms
from email2dm.cli.output import load_config_or_exit, print_error, print_info, setup_logging
from email2dm.gateway.server import SMTPBridge

# Create the main Typer app
app = typer.Typer(
    name="email2dm",
    help="Forward inbound email to Telegram chats and Slack users or channels.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print_info(f"email2dm version [green]{__version__}[/green]")
        raise typer.Exit()


# noinspection PyUnusedLocal
@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    [bold blue]email2dm[/bold blue] - SMTP to chat bridge

    Mail sent to [bold]<chat-id>@telegram[/bold] or [bold]<user>@slack[/bold]
    is delivered as a direct message.
    """


@app.command()
def serve(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to config.yaml."),
    ] = None,
    skip_checks: Annotated[
        bool,
        typer.Option("--skip-checks", help="Do not verify platform tokens at startup."),
    ] = False,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "-l", help="Override the configured log level."),
    ] = None,
) -> None:
    """Run the SMTP server until interrupted."""
    config_obj = load_config_or_exit(config_path)
    setup_logging(log_level or config_obj.logging.level)

    try:
        bridge = SMTPBridge(config_obj)
    except (OSError, ssl.SSLError) as e:
        print_error(f"Cannot load TLS certificate: {e}")
        raise typer.Exit(1)

    try:
        asyncio.run(bridge.serve_forever(run_checks=not skip_checks))
    except OSError as e:
        print_error(f"Cannot listen on {config_obj.smtp.host}:{config_obj.smtp.port}: {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass  # Clean exit on Ctrl+C


# Register command groups
app.add_typer(platforms.app, name="platforms")
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
