"""Terminal driver for the host picker.

Keys are read from the tty in cbreak mode and translated into picker events;
the picker state is redrawn with ``rich.live.Live`` after every key. The
driver never writes files.
"""

import codecs
import os
import select
import sys
import termios
import tty
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..exceptions import ResolutionError
from ..hosts.models import HostEntry
from ..picker import Backspace, Cancel, Char, Confirm, Down, Picker, PickerEvent, Up
from .context import stderr_console

ESCAPE_TIMEOUT = 0.05
RESERVED_ROWS = 4

_CONTROL_KEYS: dict[str, PickerEvent] = {
    "\r": Confirm(),
    "\n": Confirm(),
    "\x7f": Backspace(),
    "\x08": Backspace(),
    "\x03": Cancel(),
    "\x04": Cancel(),
    "\x10": Up(),  # Ctrl-P
    "\x0e": Down(),  # Ctrl-N
}

_ESCAPE_SEQUENCES: dict[str, PickerEvent] = {
    "[A": Up(),
    "[B": Down(),
    "OA": Up(),
    "OB": Down(),
}


@contextmanager
def cbreak_terminal(fd: int) -> Iterator[None]:
    """Switch ``fd`` to cbreak mode and restore its settings on exit."""
    saved = termios.tcgetattr(fd)
    try:
        tty.setcbreak(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _pending(fd: int) -> bool:
    ready, _, _ = select.select([fd], [], [], ESCAPE_TIMEOUT)
    return bool(ready)


def read_event(fd: int) -> PickerEvent | None:
    """Block for one key press and translate it.

    Returns:
        The matching event, or None for keys the picker ignores
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    key = ""
    while not key:
        data = os.read(fd, 1)
        if not data:
            return Cancel()
        key = decoder.decode(data)

    if key == "\x1b":
        if not _pending(fd):
            return Cancel()
        sequence = b""
        # The tail of an arrow key can arrive in separate reads.
        while len(sequence) < 2 and (not sequence or _pending(fd)):
            chunk = os.read(fd, 2 - len(sequence))
            if not chunk:
                break
            sequence += chunk
        return _ESCAPE_SEQUENCES.get(sequence.decode("ascii", errors="replace"))

    if key in _CONTROL_KEYS:
        return _CONTROL_KEYS[key]
    if key.isprintable():
        return Char(key)
    return None


def render(picker: Picker, max_rows: int = 20) -> RenderableType:
    """Draw the query line and the grouped, windowed host list."""
    prompt = Text.assemble(("> ", "bold cyan"), picker.query)

    table = Table.grid(padding=(0, 2))
    table.add_column(no_wrap=True)
    table.add_column(no_wrap=True)
    table.add_column(no_wrap=True, style="dim")

    rows: list[tuple[str, str, str, bool]] = []
    index = 0
    for group in picker.groups:
        label = f"#{group.tag}" if group.tag else "untagged"
        rows.append((f"[bold magenta]{escape(label)}[/bold magenta]", "", "", False))
        for item in group.hosts:
            selected = index == picker.selected
            marker = "[bold cyan]▸[/bold cyan] " if selected else "  "
            rows.append(
                (
                    f"{marker}{escape(item.alias)}",
                    escape(item.entry.destination),
                    escape(" ".join(item.entry.tags)),
                    selected,
                )
            )
            index += 1

    selected_row = next((i for i, row in enumerate(rows) if row[3]), 0)
    start = max(0, min(selected_row - max_rows // 2, len(rows) - max_rows))
    for alias, destination, tags, selected in rows[start : start + max_rows]:
        table.add_row(alias, destination, tags, style="reverse" if selected else None)

    if not picker.visible:
        footer = Text("No matching hosts", style="dim")
    else:
        footer = Text(
            f"{len(picker.visible)} hosts  ↑/↓ move  enter connect  esc cancel",
            style="dim",
        )
    return Group(prompt, table, footer)


def run_picker(picker: Picker, console: Console | None = None) -> HostEntry | None:
    """Drive ``picker`` from the terminal until it is confirmed or cancelled.

    Returns:
        The chosen host, or None when cancelled

    Raises:
        ResolutionError: If stdin is not a terminal
    """
    console = console or stderr_console
    if not sys.stdin.isatty():
        raise ResolutionError(
            "The host picker needs an interactive terminal; pass a host alias instead"
        )

    fd = sys.stdin.fileno()
    max_rows = max(console.height - RESERVED_ROWS, 3)
    with cbreak_terminal(fd), Live(
        render(picker, max_rows), console=console, auto_refresh=False, transient=True
    ) as live:
        while not picker.done:
            try:
                event = read_event(fd)
            except KeyboardInterrupt:
                event = Cancel()
            if event is None:
                continue
            picker.handle(event)
            live.update(render(picker, max_rows), refresh=True)

    return picker.result
