"""Managed host store backed by ``hosts.toml``.

File format::

    [hosts.prod-web]
    hostname = "10.0.1.50"
    user = "deploy"
    port = 22
    identity_file = "~/.ssh/deploy"
    tags = ["prod", "web"]
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from ..exceptions import ConfigError
from ..logging import get_logger
from ..storage import TomlDocumentBuilder, file_lock, read_toml
from .models import HostEntry, Origin

logger = get_logger(__name__)

FILE_HEADER = "Hosts managed by oken. Edit with `oken host add/edit/remove`."


class ManagedHostStore:
    """Reads and atomically rewrites the managed host file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, HostEntry]:
        """Parse the host file.

        Returns:
            Entries by alias (empty if the file does not exist)

        Raises:
            ConfigError: If the file is malformed
        """
        data = read_toml(self.path)
        raw_hosts = data.get("hosts", {})
        if not isinstance(raw_hosts, dict):
            raise ConfigError(f"Failed to parse {self.path}: 'hosts' must be a table")

        entries: dict[str, HostEntry] = {}
        for alias, fields in raw_hosts.items():
            if not isinstance(fields, dict):
                raise ConfigError(
                    f"Failed to parse {self.path}: host '{alias}' must be a table"
                )
            try:
                entries[alias] = HostEntry(
                    alias=alias,
                    hostname=fields.get("hostname", ""),
                    user=fields.get("user"),
                    port=fields.get("port"),
                    key_path=fields.get("identity_file"),
                    tags=fields.get("tags", []),
                    origin=Origin.MANAGED,
                    source=self.path,
                )
            except ValidationError as e:
                raise ConfigError(
                    f"Invalid host '{alias}' in {self.path}: {e}"
                ) from e
        return entries

    def save(self, entries: dict[str, HostEntry]) -> None:
        """Replace the file with ``entries`` (sorted by alias)."""
        builder = TomlDocumentBuilder(header=FILE_HEADER)
        for alias in sorted(entries):
            entry = entries[alias]
            builder.add_table(
                "hosts",
                alias,
                {
                    "hostname": entry.hostname,
                    "user": entry.user,
                    "port": entry.port,
                    "identity_file": entry.key_path,
                    "tags": list(entry.tags) or None,
                },
            )
        builder.write(self.path)

    @contextmanager
    def transaction(self) -> Iterator[dict[str, HostEntry]]:
        """Load, let the caller mutate, then save, all under an exclusive lock.

        Nothing is written if the block raises.
        """
        with file_lock(self.path):
            entries = self.load()
            yield entries
            self.save(entries)
            logger.debug("Managed hosts saved", path=str(self.path), count=len(entries))
