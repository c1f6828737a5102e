"""File helpers shared by the on-disk stores.

Every store is re-read on each operation and written either by appending
under an exclusive lock or by writing a temporary file next to the target
and renaming it over the original. A reader therefore always sees either
the old or the new content, never a partial write.
"""

import fcntl
import json
import os
import tempfile
import tomllib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .exceptions import ConfigError
from .logging import get_logger

logger = get_logger(__name__)


@contextmanager
def file_lock(path: Path, shared: bool = False) -> Iterator[None]:
    """Hold an advisory ``flock`` on ``<path>.lock`` for the duration of the block.

    A sidecar lock file is used so that the data file itself can be replaced
    atomically while the lock is held.

    Args:
        path: File being protected
        shared: Take a shared (reader) lock instead of an exclusive one
    """
    lock_path = path.with_name(path.name + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a") as lock_file:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_SH if shared else fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def atomic_write_text(path: Path, content: str, mode: int = 0o600) -> None:
    """Replace ``path`` with ``content`` in a single rename.

    Args:
        path: Destination file
        content: Full new file content
        mode: Permission bits for the new file

    Raises:
        OSError: If the temporary file cannot be written or renamed
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
    logger.debug("File replaced atomically", path=str(path))


def read_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML file, treating a missing file as empty.

    Raises:
        ConfigError: If the file cannot be read or is not valid TOML
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e


def _toml_key(key: str) -> str:
    if key and all(c.isalnum() or c in "-_" for c in key):
        return key
    return json.dumps(key)


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        # JSON string escapes are a subset of TOML basic-string escapes
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    raise TypeError(f"Unsupported TOML value type: {type(value).__name__}")


class TomlDocumentBuilder:
    """Builder for the small TOML documents oken persists.

    Documents are a sequence of ``[section.name]`` tables holding scalar and
    array values. ``None`` values are omitted.
    """

    def __init__(self, header: str | None = None) -> None:
        self._header = header
        self._tables: list[tuple[str, dict[str, Any]]] = []

    def add_table(
        self, section: str, name: str, values: dict[str, Any]
    ) -> "TomlDocumentBuilder":
        """Add a ``[section.name]`` table.

        Args:
            section: Top-level table name (``hosts``, ``tunnels``)
            name: Entry key
            values: Key/value pairs of the entry

        Returns:
            Self for method chaining
        """
        self._tables.append((f"{section}.{_toml_key(name)}", values))
        return self

    def build(self) -> str:
        """Render the document to TOML text."""
        lines: list[str] = []
        if self._header:
            lines.extend(f"# {line}" for line in self._header.splitlines())
            lines.append("")

        for table, values in self._tables:
            lines.append(f"[{table}]")
            for key, value in values.items():
                if value is None:
                    continue
                lines.append(f"{_toml_key(key)} = {_toml_value(value)}")
            lines.append("")

        return "\n".join(lines)

    def write(self, path: Path) -> None:
        """Render and atomically replace ``path``."""
        atomic_write_text(path, self.build())
        logger.info("TOML document written", path=str(path), tables=len(self._tables))
