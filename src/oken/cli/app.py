"""Main CLI application.

``oken`` with no subcommand connects: to the picker's choice, to an exact
alias, to the hosts of a tag, or straight through to ssh with the arguments
as given. :func:`run` routes such invocations to the hidden ``connect``
command before typer parses them.
"""

import shlex
import sys
from datetime import datetime
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..exceptions import AuditError, ConfigError, OkenError, ResolutionError
from ..hosts import HostEntry
from ..logging import DEFAULT_LOG_LEVEL, get_logger, setup_logging
from ..matcher import TAG_PREFIX
from ..picker import Picker
from ..ssh_args import extract_destination, extract_host, extract_port, option_value
from ..supervisor import (
    EXIT_CANCELLED,
    EXIT_ERROR,
    ConnectionSupervisor,
    ConnectionTarget,
    ConnectOptions,
    inject_keepalive,
)
from ..utils import format_duration, split_target
from .context import (
    CliContext,
    get_context,
    handle_errors,
    print_error,
    stdout_console,
)
from .host_commands import register_host_app
from .picker_view import run_picker
from .prompts import RichPromptProvider
from .tunnel_commands import register_tunnel_app

logger = get_logger(__name__)
prompt_provider = RichPromptProvider()

CONNECT_COMMAND = "connect"
SUBCOMMANDS = frozenset({"host", "tunnel", "audit", "print", CONNECT_COMMAND})
GLOBAL_OPTIONS_WITH_VALUES = frozenset({"--log-level", "--log-file"})
EAGER_OPTIONS = frozenset({"--help", "-h", "--version"})

app = typer.Typer(
    name="oken",
    add_completion=False,
    help="A smarter ssh: pick hosts, reconnect dropped sessions, manage tunnels",
    context_settings={"help_option_names": ["-h", "--help"]},
    rich_markup_mode="rich",
)

register_host_app(app)
register_tunnel_app(app)


def _version_callback(value: bool) -> None:
    if value:
        stdout_console.print(f"oken {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(
        DEFAULT_LOG_LEVEL,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    log_file: Path | None = typer.Option(None, "--log-file", help="Log file path"),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """
    oken - a smarter ssh

    Run without arguments to pick a host, with an alias to connect to it, or
    with any ssh arguments to pass them through.
    """
    try:
        setup_logging(level=log_level, log_file=str(log_file) if log_file else None)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e
    get_context(ctx)


def _recency(state: CliContext) -> dict[str, datetime]:
    try:
        return state.audit.recency_table()
    except AuditError as e:
        logger.warning("History unavailable, ranking without it", error=str(e))
        return {}


def _pick(state: CliContext, query: str = "") -> HostEntry:
    hosts = state.registry.load()
    if not hosts:
        raise ResolutionError("No hosts configured. Use `oken host add` to add one.")

    picker = Picker(hosts, _recency(state), query=query)
    entry = run_picker(picker)
    if entry is None:
        raise typer.Exit(EXIT_CANCELLED)
    return entry


def _offer_to_save(state: CliContext, args: list[str]) -> None:
    """Offer to save an unknown ``user@host`` destination as a managed host."""
    destination = extract_destination(args)
    if not destination or "@" not in destination or not prompt_provider.interactive:
        return
    user, hostname = split_target(destination)
    if user is None:
        return

    hosts = state.registry.load()
    same_host = [h for h in hosts if hostname in (h.alias, h.hostname)]
    if any(h.user == user for h in same_host) or any(
        h.alias == destination for h in hosts
    ):
        return

    if same_host:
        prompt_provider.info(
            f"New user {user} for known host {hostname}; save it for the picker?"
        )
        alias = prompt_provider.prompt("Save as (Enter to skip)").strip()
        if not alias:
            return
    else:
        prompt_provider.info(
            f"Looks like a new host. Save {destination} so it shows up in the picker?"
        )
        alias = prompt_provider.prompt(
            'Save as ("n" to skip)', default=hostname
        ).strip()
        if alias.lower() in ("n", "no"):
            return

    tags = prompt_provider.prompt("Tags (comma-separated, Enter to skip)")
    try:
        state.registry.add(
            HostEntry(
                alias=alias,
                hostname=hostname,
                user=user,
                port=extract_port(args),
                key_path=option_value(args, "-i"),
                tags=[t for t in tags.split(",") if t.strip()],
            )
        )
    except (OkenError, ValueError) as e:
        prompt_provider.warning(f"Could not save host: {e}")
        return
    prompt_provider.success(f"Saved host '{alias}'")


def _resolve_target(
    state: CliContext, args: list[str], tag: str | None
) -> ConnectionTarget:
    if tag:
        matches = state.registry.filter_by_tag(tag)
        if not matches:
            raise ResolutionError(f"No hosts found with tag '{tag}'")
        if len(matches) == 1:
            return ConnectionTarget.from_host(matches[0])
        return ConnectionTarget.from_host(_pick(state, f"{TAG_PREFIX}{tag}"))

    if not args:
        return ConnectionTarget.from_host(_pick(state))

    if len(args) == 1 and not args[0].startswith("-") and "@" not in args[0]:
        entry = state.registry.resolve(args[0])
        if entry is not None:
            return ConnectionTarget.from_host(entry)
        return ConnectionTarget.from_host(_pick(state, args[0]))

    hostname = extract_host(args)
    try:
        _offer_to_save(state, args)
        known = state.registry.find_by_destination(hostname) if hostname else None
    except ConfigError as e:
        logger.warning("Host list unavailable, connecting without it", error=str(e))
        known = None
    return ConnectionTarget.literal(args, known)


@app.command(
    name=CONNECT_COMMAND,
    hidden=True,
    context_settings={
        "allow_extra_args": True,
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
    },
)
def connect(
    ctx: typer.Context,
    args: list[str] | None = typer.Argument(None, help="Alias, query or ssh args"),
    tag: str | None = typer.Option(None, "--tag", help="Connect within a tag"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip danger-tag prompts"),
    no_reconnect: bool = typer.Option(
        False, "--no-reconnect", help="Do not respawn ssh after a dropped link"
    ),
) -> None:
    """Connect to a host (the default command)."""
    state = get_context(ctx)
    args = [*(args or []), *ctx.args]
    with handle_errors():
        target = _resolve_target(state, args, tag)
        supervisor = ConnectionSupervisor(
            state.config,
            state.ssh,
            audit=state.audit,
            confirm=prompt_provider.confirm_danger,
        )
        result = supervisor.connect(
            target, ConnectOptions(assume_yes=yes, no_reconnect=no_reconnect)
        )
    raise typer.Exit(result.exit_code)


@app.command(name="print")
def print_command(
    ctx: typer.Context,
    alias: str = typer.Argument(..., help="Host alias or destination"),
) -> None:
    """Print the ssh command line oken would run."""
    state = get_context(ctx)
    with handle_errors():
        entry = state.registry.resolve(alias)
        target = (
            ConnectionTarget.from_host(entry)
            if entry
            else ConnectionTarget.literal([alias])
        )
        command = state.ssh.command(inject_keepalive(state.config, target.args))
    stdout_console.print(
        shlex.join(command), highlight=False, markup=False, soft_wrap=True
    )


@app.command(name="audit")
def audit_command(
    ctx: typer.Context,
    lines: int = typer.Option(20, "--lines", "-n", min=1, help="Sessions to show"),
) -> None:
    """Show recent sessions, newest first."""
    state = get_context(ctx)
    with handle_errors():
        records = state.audit.recent(lines)

    if not records:
        stdout_console.print("No connections recorded.")
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("TIME", no_wrap=True)
    table.add_column("ALIAS", style="cyan")
    table.add_column("TARGET")
    table.add_column("DURATION", justify="right")
    table.add_column("EXIT", justify="right")
    for record in records:
        table.add_row(
            record.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            escape(record.alias),
            escape(record.target),
            format_duration(record.duration),
            str(record.exit_code),
            style="red" if record.exit_code else None,
        )
    stdout_console.print(table)


def route_args(argv: list[str]) -> list[str]:
    """Insert the ``connect`` command where the user did not name one.

    Global options before the first other token are left in place.
    """
    index = 0
    while index < len(argv):
        token = argv[index]
        if token in EAGER_OPTIONS:
            return argv
        if token in GLOBAL_OPTIONS_WITH_VALUES:
            index += 2
            continue
        if token.split("=", 1)[0] in GLOBAL_OPTIONS_WITH_VALUES:
            index += 1
            continue
        break

    if index < len(argv) and argv[index] in SUBCOMMANDS:
        return argv
    return [*argv[:index], CONNECT_COMMAND, *argv[index:]]


def run(argv: list[str] | None = None) -> None:
    """CLI entry point"""
    args = route_args(list(sys.argv[1:] if argv is None else argv))
    try:
        app(args=args, prog_name="oken")
    except OkenError as e:
        print_error(str(e))
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    run()
