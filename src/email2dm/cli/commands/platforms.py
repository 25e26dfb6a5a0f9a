"""
email2dm platforms - Inspect configured chat platforms.

Usage:
    email2dm platforms list
    email2dm platforms check
    email2dm platforms resolve 123456789@telegram [--lookup]
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer

from email2dm.cli.output import (
    console,
    load_config_or_exit,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
)
from email2dm.dispatch.exceptions import AddressError
from email2dm.dispatch.resolver import AddressResolver
from email2dm.gateway.server import build_router
from email2dm.platforms.exceptions import PlatformError
from email2dm.platforms.models import IdentifierKind, PlatformType
from email2dm.platforms.protocol import IdentifierResolver
from email2dm.platforms.router import PlatformRouter

app = typer.Typer(
    name="platforms",
    help="Inspect configured chat platforms.",
)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config.yaml."),
]


@app.command("list")
def list_platforms(config_path: ConfigOption = None) -> None:
    """List platforms, their limits and the recipient domains that reach them."""
    config = load_config_or_exit(config_path)
    resolver = AddressResolver(config.platforms.domains)

    rows = []
    for platform in PlatformType:
        platform_config = getattr(config.platforms, platform.value)
        domains = sorted(d for d, p in resolver.domains.items() if p == platform)
        rows.append(
            [
                platform.value,
                "[green]yes[/green]" if platform_config.enabled else "[dim]no token[/dim]",
                platform_config.max_message_length,
                f"{platform_config.chunk_delay_seconds:g}s",
                ", ".join(domains),
            ]
        )
    print_table(["Platform", "Configured", "Max length", "Part delay", "Domains"], rows, title="Platforms")


async def _check(router: PlatformRouter) -> dict:
    await router.start()
    try:
        return await router.test_connections()
    finally:
        await router.stop()


@app.command()
def check(config_path: ConfigOption = None) -> None:
    """Verify the bot token of every configured platform."""
    config = load_config_or_exit(config_path)
    router = build_router(config)
    if not router.platforms:
        print_warning("No platform tokens configured")
        raise typer.Exit(1)

    results = asyncio.run(_check(router))
    failed = False
    for platform, result in results.items():
        if isinstance(result, Exception):
            failed = True
            print_error(f"{platform.value}: {result}")
        else:
            details = ", ".join(f"{k}={v}" for k, v in result.items() if v is not None)
            print_success(f"{platform.value}: {details}")

    if failed:
        raise typer.Exit(1)


async def _lookup(router: PlatformRouter, platform: PlatformType, username: str) -> str:
    client = router.get_client(platform)
    if not isinstance(client, IdentifierResolver):
        raise PlatformError(f"{platform.value} client not configured", platform.value)
    await router.start()
    try:
        return await client.resolve_identifier(username)
    finally:
        await router.stop()


@app.command()
def resolve(
    address: Annotated[str, typer.Argument(help="Recipient address, e.g. 123456789@telegram.")],
    lookup: Annotated[
        bool,
        typer.Option("--lookup", help="Look up usernames against the platform directory."),
    ] = False,
    config_path: ConfigOption = None,
) -> None:
    """Show where mail sent to ADDRESS would be delivered."""
    config = load_config_or_exit(config_path)
    resolver = AddressResolver(config.platforms.domains)

    try:
        target = resolver.resolve([address])
    except AddressError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(f"[bold]Platform:[/bold] {target.platform.value}")
    console.print(f"[bold]Identifier:[/bold] {target.raw} ({target.kind.value})")

    if target.kind == IdentifierKind.GROUP:
        console.print(f"[bold]Destination:[/bold] -{target.raw[1:]}")
    elif target.kind == IdentifierKind.USERNAME:
        if not lookup:
            print_info("Username is looked up at delivery time (use --lookup to resolve now)")
            return
        try:
            destination = asyncio.run(_lookup(build_router(config), target.platform, target.raw))
        except PlatformError as e:
            print_error(str(e))
            raise typer.Exit(1)
        console.print(f"[bold]Destination:[/bold] {destination}")
    else:
        console.print(f"[bold]Destination:[/bold] {target.raw}")
