"""
email2dm config - Configuration inspection commands.

Usage:
    email2dm config show
    email2dm config show smtp
    email2dm config show --json
    email2dm config validate
"""

import json
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import yaml
from rich.panel import Panel
from rich.syntax import Syntax

from email2dm.cli.output import console, load_config_or_exit, print_success
from email2dm.config.loader import get_default_config_path

app = typer.Typer(
    name="config",
    help="Configuration inspection.",
)

_SECRET_KEYS = ("bot_token",)


def mask_secrets(value: Any) -> Any:
    """Replace token values with a masked form, recursively."""
    if isinstance(value, dict):
        return {
            k: _mask(v) if k in _SECRET_KEYS and isinstance(v, str) else mask_secrets(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [mask_secrets(v) for v in value]
    return value


def _mask(token: str) -> str:
    if not token:
        return ""
    if len(token) <= 8:
        return "****"
    return f"****{token[-4:]}"


@app.command()
def show(
    section: Annotated[
        str | None,
        typer.Argument(help="Config section to show (e.g., 'smtp', 'platforms')."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON."),
    ] = False,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to config.yaml."),
    ] = None,
) -> None:
    """Show the effective configuration with tokens masked."""
    config = load_config_or_exit(config_path)
    config_dict = mask_secrets(config.model_dump())

    if section:
        if section not in config_dict:
            console.print(f"[red]Section '{section}' not found in configuration.[/red]")
            raise typer.Exit(1)
        config_dict = config_dict[section]

    if json_output:
        console.print_json(json.dumps(config_dict, default=str))
        return

    output = yaml.dump(config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)
    if section:
        console.print(Panel(Syntax(output, "yaml", theme="monokai"), title=f"[cyan]{section}[/cyan]"))
    else:
        console.print(Syntax(output, "yaml", theme="monokai"))


@app.command()
def validate(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to config.yaml."),
    ] = None,
) -> None:
    """Load and validate the configuration."""
    config = load_config_or_exit(config_path)
    source = config_path or get_default_config_path()
    print_success(f"Configuration is valid ({source})")
    console.print(
        f"Listening on {config.smtp.host}:{config.smtp.port}, "
        f"{len(config.security.allowed_networks)} allowed network(s), "
        f"TLS {'enabled' if config.tls.enable else 'disabled'}"
    )
