"""Utility functions for oken."""

import re

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")
    if not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def validate_non_empty_string(value: str, field_name: str) -> str:
    """Validate that a string is not empty or only whitespace.

    Args:
        value: String value to validate
        field_name: Name of the field for error messages

    Returns:
        Stripped string value

    Raises:
        ValueError: If string is empty or only whitespace
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


def validate_name(value: str, field_name: str = "Name") -> str:
    """Validate an alias or profile name.

    Names end up in file names (control sockets) and TOML table keys, so they
    are restricted to letters, digits, dots, hyphens and underscores.

    Args:
        value: Name to validate
        field_name: Name of the field for error messages

    Returns:
        Stripped name

    Raises:
        ValueError: If the name is empty or contains other characters
    """
    value = validate_non_empty_string(value, field_name)
    if not _NAME_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must start with a letter or digit and contain only "
            "letters, digits, dots, hyphens and underscores"
        )
    return value


def split_target(target: str) -> tuple[str | None, str]:
    """Split a ``user@host`` target into its parts.

    Args:
        target: Destination as typed by the user

    Returns:
        Tuple of (user or None, host)
    """
    user, sep, host = target.rpartition("@")
    if not sep or not user or not host:
        return None, target
    return user, host


def format_duration(seconds: float) -> str:
    """Render a session duration for humans (``42s``, ``3m 05s``, ``2h 10m``)."""
    secs = max(int(seconds), 0)
    if secs < 60:
        return f"{secs}s"
    if secs < 3600:
        return f"{secs // 60}m {secs % 60:02d}s"
    return f"{secs // 3600}h {(secs % 3600) // 60:02d}m"
