"""Helpers for inspecting ssh command-line arguments.

Only enough of ssh's grammar is understood to find the destination and the
flags around it; everything else is passed through untouched.
"""

from .utils import split_target

# ssh flags that consume the following argument
FLAGS_WITH_VALUES = frozenset(
    {
        "-B", "-b", "-c", "-D", "-E", "-e", "-F", "-I", "-i", "-J", "-L", "-l",
        "-m", "-O", "-o", "-p", "-Q", "-R", "-S", "-W", "-w",
    }
)  # fmt: skip

FORWARD_FLAGS = ("-L", "-R", "-D")


def _destination_index(args: list[str]) -> int | None:
    skip_next = False
    for index, arg in enumerate(args):
        if skip_next:
            skip_next = False
            continue
        if arg in FLAGS_WITH_VALUES:
            skip_next = True
            continue
        if arg.startswith("-"):
            continue
        return index
    return None


def extract_destination(args: list[str]) -> str | None:
    """Return the first positional argument (``user@host`` or ``host``)."""
    index = _destination_index(args)
    return args[index] if index is not None else None


def extract_host(args: list[str]) -> str | None:
    """Return the host part of the destination, without any ``user@``."""
    destination = extract_destination(args)
    if destination is None:
        return None
    return split_target(destination)[1]


def option_value(args: list[str], flag: str) -> str | None:
    """Return the value following the first occurrence of ``flag``."""
    for index, arg in enumerate(args[:-1]):
        if arg == flag:
            return args[index + 1]
    return None


def extract_port(args: list[str]) -> int | None:
    value = option_value(args, "-p")
    if value is None or not value.isdigit():
        return None
    return int(value)


def split_flags(args: list[str]) -> tuple[list[str], list[str]]:
    """Separate flags (with their values) from positional arguments.

    Returns:
        Tuple of (flags, positionals) preserving the original order
    """
    flags: list[str] = []
    positionals: list[str] = []
    skip_next = False
    for arg in args:
        if skip_next:
            flags.append(arg)
            skip_next = False
        elif arg in FLAGS_WITH_VALUES:
            flags.append(arg)
            skip_next = True
        elif arg.startswith("-"):
            flags.append(arg)
        else:
            positionals.append(arg)
    return flags, positionals


def has_option(args: list[str], name: str) -> bool:
    """Check whether any argument mentions an ``-o`` option name (case-insensitive)."""
    needle = name.lower()
    return any(needle in arg.lower() for arg in args)
