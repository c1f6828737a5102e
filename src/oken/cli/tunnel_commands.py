"""``oken tunnel`` commands."""

import typer
from rich.markup import escape
from rich.table import Table

from ..exceptions import TunnelError
from ..tunnels import TunnelProfile, TunnelStatus
from .context import get_context, handle_errors, stdout_console
from .prompts import RichPromptProvider

prompt_provider = RichPromptProvider()

_PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}


def register_tunnel_app(app: typer.Typer) -> None:
    """Register the tunnel subcommand app"""
    tunnel_app = typer.Typer(
        name="tunnel", help="Manage background tunnels", add_completion=False
    )

    tunnel_app.command(name="add", context_settings=_PASSTHROUGH)(tunnel_add)
    tunnel_app.command(name="start")(tunnel_start)
    tunnel_app.command(name="stop")(tunnel_stop)
    tunnel_app.command(name="list")(tunnel_list)
    tunnel_app.command(name="remove")(tunnel_remove)

    app.add_typer(tunnel_app, name="tunnel")


def tunnel_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tunnel name"),
    args: list[str] = typer.Argument(..., help="ssh arguments: forwards and target"),
    replace: bool = typer.Option(
        False, "--replace", help="Overwrite an existing tunnel"
    ),
) -> None:
    """Save a tunnel, e.g. ``oken tunnel add db -L 5432:localhost:5432 prod-db``."""
    state = get_context(ctx)
    with handle_errors():
        try:
            profile = TunnelProfile.from_args(name, list(args))
        except ValueError as e:
            raise TunnelError(str(e)) from e
        state.tunnels(with_ssh=False).add(profile, replace=replace)
    prompt_provider.success(f"Added tunnel '{name}'")


def tunnel_start(
    ctx: typer.Context, name: str = typer.Argument(..., help="Tunnel name")
) -> None:
    """Start a saved tunnel in the background."""
    state = get_context(ctx)
    with handle_errors():
        status = state.tunnels().start(name)
    if status == TunnelStatus.ALREADY_RUNNING:
        prompt_provider.info(f"Tunnel '{name}' is already running")
    else:
        prompt_provider.success(f"Started tunnel '{name}'")


def tunnel_stop(
    ctx: typer.Context, name: str = typer.Argument(..., help="Tunnel name")
) -> None:
    """Stop a running tunnel."""
    state = get_context(ctx)
    with handle_errors():
        status = state.tunnels().stop(name)
    if status == TunnelStatus.NOT_RUNNING:
        prompt_provider.info(f"Tunnel '{name}' is not running")
    else:
        prompt_provider.success(f"Stopped tunnel '{name}'")


def tunnel_list(ctx: typer.Context) -> None:
    """List saved tunnels with their current state."""
    state = get_context(ctx)
    with handle_errors():
        tunnels = state.tunnels().list()

    if not tunnels:
        stdout_console.print("No tunnels configured. Use `oken tunnel add` to add one.")
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("NAME", style="cyan", no_wrap=True)
    table.add_column("TARGET")
    table.add_column("STATUS")
    table.add_column("FORWARDS")
    for info in tunnels:
        forwards = [str(f) for f in info.profile.forwards]
        table.add_row(
            escape(info.name),
            escape(info.profile.target),
            "[green]running[/green]" if info.running else "[dim]stopped[/dim]",
            escape(" ".join([*forwards, *info.profile.extra_args])),
        )
    stdout_console.print(table)


def tunnel_remove(
    ctx: typer.Context, name: str = typer.Argument(..., help="Tunnel name")
) -> None:
    """Stop a tunnel if needed and delete it."""
    state = get_context(ctx)
    with handle_errors():
        state.tunnels().remove(name)
    prompt_provider.success(f"Removed tunnel '{name}'")
