"""sitehost CLI - Command line interface."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from sitehost import __version__
from sitehost.core.config import ServerSettings, load_settings, set_config

console = Console()

BANNER = """
 ___ _ _       _               _
/ __(_) |_ ___| |_  ___  ___ _| |_
\\__ \\ |  _/ -_) ' \\/ _ \\(_-<|_   _|
|___/_|\\__\\___|_||_\\___//__/  |_|
   static sites on every alias
"""


def configure_logging(level: str) -> None:
    """Route structlog output through a level filter."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
    )


def _settings(ctx: click.Context) -> ServerSettings:
    return ctx.obj["settings"]


def _repository(settings: ServerSettings):
    from sitehost.storage.backends import JSONFileBackend
    from sitehost.storage.repository import UserRepository

    return UserRepository(JSONFileBackend(settings.users_path))


@click.group(invoke_without_command=True)
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to YAML or TOML config file",
)
@click.option("--log-level", default=None, help="Log level (debug, info, warning, error)")
@click.pass_context
def main(ctx: click.Context, config_file: str | None, log_level: str | None):
    """sitehost - publish static sites under generated subdomains."""
    ctx.ensure_object(dict)
    try:
        settings = load_settings(config_file)
    except (ValidationError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Failed to load config: {escape(str(e))}[/red]")
        sys.exit(1)

    if log_level:
        settings = settings.model_copy(update={"log_level": log_level})
    set_config(settings)
    ctx.obj["settings"] = settings
    configure_logging(settings.log_level)

    if ctx.invoked_subcommand is None:
        console.print(BANNER, style="cyan")
        console.print("Usage: sitehost serve", style="yellow")
        console.print("\nCommands:", style="bold")
        console.print("  sitehost serve            Start the hosting server", style="dim")
        console.print("  sitehost config show      Show effective configuration", style="dim")
        console.print("  sitehost resolve HOST     Show how a host is routed", style="dim")
        console.print("  sitehost users list       List registered users", style="dim")
        console.print("  sitehost sites list       List published sites", style="dim")


@main.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", "-p", type=int, default=None, help="Bind port")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None):
    """Start the hosting server."""
    settings = _settings(ctx)
    updates = {key: value for key, value in (("host", host), ("port", port)) if value is not None}
    if updates:
        settings = settings.model_copy(update=updates)

    console.print(BANNER, style="cyan")
    console.print(
        Panel(
            f"[bold]Listening:[/bold] http://{settings.host}:{settings.port}\n"
            f"[bold]Primary:[/bold] {settings.domains.primary}\n"
            f"[bold]Aliases:[/bold] {', '.join(settings.domains.aliases)}\n"
            f"[bold]Data:[/bold] {settings.data_dir}",
            title="sitehost",
            border_style="green",
        )
    )
    console.print("\nPress Ctrl+C to stop.\n", style="dim")

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run_server(settings))
    console.print("[green]Server stopped.[/green]")


async def _run_server(settings: ServerSettings) -> None:
    from sitehost.server.app import SitehostServer

    server = SitehostServer(settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    await server.start()
    try:
        await stop.wait()
    finally:
        await server.stop()


@main.command()
def version():
    """Show version information."""
    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.group()
def config():
    """Inspect configuration."""


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def config_show(ctx: click.Context, json_output: bool):
    """Show the effective configuration."""
    display = _settings(ctx).to_display_dict()
    if json_output:
        console.print(json.dumps(display, indent=2))
        return

    for section, values in display.items():
        table = Table(title=section.capitalize())
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for key, value in values.items():
            table.add_row(key, str(value))
        console.print(table)


@config.command("validate")
@click.pass_context
def config_validate(ctx: click.Context):
    """Check that the domain configuration compiles."""
    from sitehost.domains.registry import DomainRegistry
    from sitehost.errors import InvalidFormat

    settings = _settings(ctx)
    try:
        registry = DomainRegistry(settings.domains)
    except InvalidFormat as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(e.message)}")
        sys.exit(1)

    console.print("[green]Configuration is valid.[/green]")
    console.print(f"[bold]Primary:[/bold] {registry.primary}")
    console.print(f"[bold]Example:[/bold] {', '.join(registry.alias_hostnames('example'))}")


@main.command()
@click.argument("host")
@click.option("--path", default="/", help="Request path to route")
@click.pass_context
def resolve(ctx: click.Context, host: str, path: str):
    """Show how HOST is resolved and which site it reaches."""
    from sitehost.domains.registry import DomainRegistry
    from sitehost.domains.resolver import HostResolver
    from sitehost.domains.routing import Redirect, ServeSite, SiteNotFound, SiteRouter
    from sitehost.services.files import SiteFiles

    settings = _settings(ctx)
    resolver = HostResolver(DomainRegistry(settings.domains))
    resolved = resolver.resolve(host)

    if resolved is None:
        console.print(f"[yellow]{host}[/yellow] is not under a configured domain")
    else:
        route = resolver.canonicalize(resolved)
        console.print(
            Panel(
                f"[bold]Subdomain:[/bold] {resolved.subdomain or '(none)'}\n"
                f"[bold]Domain:[/bold] {resolved.domain}"
                f"{' (alias)' if resolved.is_alias else ''}\n"
                f"[bold]Canonical:[/bold] {route.canonical_host}\n"
                f"[bold]All hostnames:[/bold] {', '.join(route.all_domains)}",
                title=resolved.full_subdomain,
                border_style="cyan",
            )
        )

    router = SiteRouter(
        resolver, _repository(settings), SiteFiles(settings.sites_path), settings.redirect_url
    )
    decision = asyncio.run(router.route(host, path))
    if isinstance(decision, ServeSite):
        console.print(
            f"[green]Serves[/green] {decision.site.name} ({decision.site.slug}) "
            f"owned by {decision.user.username} via {decision.via}: {decision.path}"
        )
    elif isinstance(decision, Redirect):
        console.print(f"[cyan]Redirects[/cyan] to {decision.location}")
    elif isinstance(decision, SiteNotFound):
        console.print(f"[red]No site[/red] for {decision.subdomain}")
    else:
        console.print(f"[dim]Not a tenant request ({decision.reason})[/dim]")


@main.group()
def users():
    """Inspect registered users."""


@users.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def users_list(ctx: click.Context, json_output: bool):
    """List registered users."""
    registered = asyncio.run(_repository(_settings(ctx)).list_users())
    if json_output:
        console.print(json.dumps([user.to_public_dict() for user in registered], indent=2))
        return
    if not registered:
        console.print("[dim]No users registered[/dim]")
        return

    table = Table(title="Users")
    table.add_column("Username", style="cyan")
    table.add_column("Email")
    table.add_column("Subdomain", style="green")
    table.add_column("Premium")
    table.add_column("Sites", justify="right")
    for user in registered:
        table.add_row(
            user.username,
            user.email,
            user.subdomain,
            "yes" if user.is_premium else "no",
            str(len(user.sites)),
        )
    console.print(table)


@main.group()
def sites():
    """Inspect published sites."""


@sites.command("list")
@click.option("--user", "username", default=None, help="Only sites owned by this username")
@click.pass_context
def sites_list(ctx: click.Context, username: str | None):
    """List published sites and the hostnames that reach them."""
    from sitehost.domains.registry import DomainRegistry

    settings = _settings(ctx)
    registry = DomainRegistry(settings.domains)
    registered = asyncio.run(_repository(settings).list_users())
    if username:
        registered = [user for user in registered if user.username.lower() == username.lower()]

    table = Table(title="Sites")
    table.add_column("Owner", style="cyan")
    table.add_column("Name")
    table.add_column("Slug", style="green")
    table.add_column("Visits", justify="right")
    table.add_column("Hostnames")
    rows = 0
    for user in registered:
        for site in user.sites:
            label = site.slug if settings.unique_slugs_globally else user.subdomain_label
            table.add_row(
                user.username,
                site.name,
                site.slug if site.published else f"{site.slug} (unpublished)",
                str(site.visits),
                ", ".join(registry.alias_hostnames(label)),
            )
            rows += 1

    if rows == 0:
        console.print("[dim]No sites published[/dim]")
        return
    console.print(table)


if __name__ == "__main__":
    main()
