"""Rich-based user prompts."""

import sys

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt

from ..supervisor import ConnectionTarget
from .context import stderr_console


class RichPromptProvider:
    """Questions and notices on stderr, so stdout stays clean for ssh."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or stderr_console

    @property
    def interactive(self) -> bool:
        return sys.stdin.isatty()

    def prompt(self, message: str, default: str = "") -> str:
        return Prompt.ask(
            message, default=default, show_default=bool(default), console=self.console
        )

    def confirm(self, message: str, default: bool = False) -> bool:
        return Confirm.ask(message, default=default, console=self.console)

    def info(self, message: str) -> None:
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def confirm_danger(self, target: ConnectionTarget, tags: list[str]) -> bool:
        """Ask before connecting to a host carrying danger tags.

        Without a terminal to ask on, the connection is declined. So is an
        interrupted or closed prompt.
        """
        tagged = escape(f"'{target.alias}' is tagged [{', '.join(tags)}]")
        self.console.print(
            f"[bold yellow]⚠  WARNING:[/bold yellow] {tagged}", highlight=False
        )
        if not self.interactive:
            self.warning("Not a terminal; pass --yes to connect anyway")
            return False
        try:
            return self.confirm("Continue?", default=False)
        except (KeyboardInterrupt, EOFError):
            self.console.print()
            return False
