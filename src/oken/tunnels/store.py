"""Tunnel profile store backed by ``tunnels.toml``.

File format::

    [tunnels.db]
    target = "prod-db"
    forwards = ["-L 5432:localhost:5432"]
    extra_args = ["-C"]
"""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from ..exceptions import ConfigError
from ..logging import get_logger
from ..storage import TomlDocumentBuilder, file_lock, read_toml
from .models import TunnelProfile

logger = get_logger(__name__)

FILE_HEADER = "Tunnels managed by oken. Edit with `oken tunnel add/remove`."


class TunnelProfileStore:
    """Reads and atomically rewrites the tunnel profile file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, TunnelProfile]:
        """Parse the profile file.

        Returns:
            Profiles by name (empty if the file does not exist)

        Raises:
            ConfigError: If the file is malformed
        """
        data = read_toml(self.path)
        raw = data.get("tunnels", {})
        if not isinstance(raw, dict):
            raise ConfigError(f"Failed to parse {self.path}: 'tunnels' must be a table")

        profiles: dict[str, TunnelProfile] = {}
        for name, fields in raw.items():
            if not isinstance(fields, dict):
                raise ConfigError(
                    f"Failed to parse {self.path}: tunnel '{name}' must be a table"
                )
            try:
                profiles[name] = TunnelProfile(
                    name=name,
                    target=fields.get("target", ""),
                    forwards=fields.get("forwards", []),
                    extra_args=fields.get("extra_args", []),
                )
            except ValidationError as e:
                raise ConfigError(f"Invalid tunnel '{name}' in {self.path}: {e}") from e
        return profiles

    def save(self, profiles: dict[str, TunnelProfile]) -> None:
        """Replace the file with ``profiles`` (sorted by name)."""
        builder = TomlDocumentBuilder(header=FILE_HEADER)
        for name in sorted(profiles):
            profile = profiles[name]
            builder.add_table(
                "tunnels",
                name,
                {
                    "target": profile.target,
                    "forwards": [str(f) for f in profile.forwards],
                    "extra_args": list(profile.extra_args),
                },
            )
        builder.write(self.path)

    @contextmanager
    def transaction(self) -> Iterator[dict[str, TunnelProfile]]:
        """Load, let the caller mutate, then save under an exclusive lock."""
        with file_lock(self.path):
            profiles = self.load()
            yield profiles
            self.save(profiles)
            logger.debug(
                "Tunnel profiles saved", path=str(self.path), count=len(profiles)
            )
