"""Shared state and error reporting for CLI commands."""

from collections.abc import Iterator
from contextlib import contextmanager
from functools import cached_property

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from ..config import Config, load_config
from ..exceptions import BinaryNotFoundError, OkenError
from ..history import AuditStore
from ..hosts import HostRegistry
from ..logging import get_logger
from ..paths import OkenPaths
from ..process import SSHBinary
from ..supervisor import EXIT_ERROR, EXIT_NOT_FOUND
from ..tunnels import TunnelManager

logger = get_logger(__name__)

# stdout carries command results; prompts, the picker and errors go to stderr
stdout_console = Console()
stderr_console = Console(stderr=True)


class CliContext:
    """Per-invocation services, built lazily from resolved paths."""

    def __init__(self, paths: OkenPaths) -> None:
        self.paths = paths

    @cached_property
    def config(self) -> Config:
        return load_config(self.paths.config_file)

    @cached_property
    def registry(self) -> HostRegistry:
        return HostRegistry.from_paths(self.paths)

    @cached_property
    def audit(self) -> AuditStore:
        return AuditStore.from_paths(self.paths)

    @cached_property
    def ssh(self) -> SSHBinary:
        return SSHBinary(self.config.ssh_binary)

    def tunnels(self, with_ssh: bool = True) -> TunnelManager:
        """Tunnel manager; ``with_ssh`` locates the binary up front."""
        return TunnelManager.from_paths(self.paths, self.ssh if with_ssh else None)


def get_context(ctx: typer.Context) -> CliContext:
    root = ctx.find_root()
    if not isinstance(root.obj, CliContext):
        root.obj = CliContext(OkenPaths.from_env())
    return root.obj


def print_error(message: str) -> None:
    stderr_console.print(f"[red]Error:[/red] {escape(message)}")


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn oken errors into a message on stderr and a non-zero exit."""
    try:
        yield
    except BinaryNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(EXIT_NOT_FOUND) from e
    except OkenError as e:
        logger.debug("Command failed", error_type=type(e).__name__, error=str(e))
        print_error(str(e))
        raise typer.Exit(EXIT_ERROR) from e
    except ValidationError as e:
        details = "; ".join(err["msg"] for err in e.errors())
        print_error(f"Invalid value: {details}")
        raise typer.Exit(EXIT_ERROR) from e
