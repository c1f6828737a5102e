"""``oken host`` commands."""

from pathlib import Path
from typing import Any

import typer
from rich.markup import escape
from rich.table import Table

from ..exceptions import RegistryError
from ..hosts import HostEntry
from ..utils import split_target
from .context import get_context, handle_errors, stdout_console
from .prompts import RichPromptProvider

prompt_provider = RichPromptProvider()


def register_host_app(app: typer.Typer) -> None:
    """Register the host subcommand app"""
    host_app = typer.Typer(
        name="host", help="Manage saved hosts", add_completion=False
    )

    host_app.command(name="add")(host_add)
    host_app.command(name="list")(host_list)
    host_app.command(name="remove")(host_remove)
    host_app.command(name="edit")(host_edit)

    app.add_typer(host_app, name="host")


def host_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Alias for the host"),
    target: str = typer.Argument(..., help="user@host or just host"),
    port: int | None = typer.Option(None, "--port", "-p", help="SSH port"),
    key: Path | None = typer.Option(None, "--key", "-i", help="Identity file"),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Tag (repeatable)"),
) -> None:
    """Save a new host."""
    state = get_context(ctx)
    with handle_errors():
        user, hostname = split_target(target)
        entry = HostEntry(
            alias=name,
            hostname=hostname,
            user=user,
            port=port,
            key_path=str(key) if key else None,
            tags=tag,
        )
        state.registry.add(entry)
    prompt_provider.success(f"Added host '{name}'")


def host_list(ctx: typer.Context) -> None:
    """List saved hosts and hosts from ~/.ssh/config."""
    state = get_context(ctx)
    with handle_errors():
        hosts = state.registry.load()

    if not hosts:
        stdout_console.print("No hosts configured. Use `oken host add` to add one.")
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("ALIAS", style="cyan", no_wrap=True)
    table.add_column("TARGET")
    table.add_column("PORT", justify="right")
    table.add_column("TAGS")
    table.add_column("SOURCE", style="dim")

    for entry in hosts:
        table.add_row(
            escape(entry.alias),
            escape(entry.destination),
            str(entry.port) if entry.port else "",
            escape(", ".join(entry.tags)),
            "managed" if entry.is_managed else escape(str(entry.source or "")),
        )
    stdout_console.print(table)


def host_remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Alias of the host to remove"),
) -> None:
    """Remove a saved host."""
    state = get_context(ctx)
    with handle_errors():
        state.registry.remove(name)
    prompt_provider.success(f"Removed host '{name}'")


def host_edit(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Alias of the host to edit"),
    hostname: str | None = typer.Option(None, "--hostname", help="New address"),
    user: str | None = typer.Option(None, "--user", "-u", help="New login user"),
    port: int | None = typer.Option(None, "--port", "-p", help="New SSH port"),
    key: Path | None = typer.Option(None, "--key", "-i", help="New identity file"),
    tag: list[str] | None = typer.Option(
        None, "--tag", "-t", help="Replace tags (repeatable)"
    ),
) -> None:
    """Change fields of a saved host."""
    changes: dict[str, Any] = {
        "hostname": hostname,
        "user": user,
        "port": port,
        "key_path": str(key) if key else None,
        "tags": tag or None,
    }
    changes = {field: value for field, value in changes.items() if value is not None}

    state = get_context(ctx)
    with handle_errors():
        if not changes:
            raise RegistryError("Nothing to change; pass at least one option")
        state.registry.edit(name, **changes)
    prompt_provider.success(f"Updated host '{name}'")
