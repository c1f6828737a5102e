"""Host registry merging the managed store with the external ssh config."""

from typing import Any

from pydantic import ValidationError

from ..exceptions import (
    DuplicateAliasError,
    ExternalHostError,
    RegistryError,
    ResolutionError,
    UnknownHostError,
)
from ..logging import get_logger
from ..paths import OkenPaths
from .external import ExternalHostSource
from .managed import ManagedHostStore
from .models import HostEntry, Origin

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset({"hostname", "user", "port", "key_path", "tags"})


def merge_hosts(
    managed: dict[str, HostEntry], external: dict[str, HostEntry]
) -> list[HostEntry]:
    """Merge both sources by alias.

    A managed entry always replaces an external entry with the same alias,
    whatever order the sources were read in.

    Args:
        managed: Entries from hosts.toml by alias
        external: Entries from the ssh config by alias

    Returns:
        Merged entries sorted by alias
    """
    merged = {alias: entry for alias, entry in external.items()}
    merged.update(managed)
    return [merged[alias] for alias in sorted(merged)]


class HostRegistry:
    """Addressable set of hosts from both sources.

    Every call re-reads both files so that concurrent invocations always act
    on the current on-disk state.
    """

    def __init__(
        self, managed: ManagedHostStore, external: ExternalHostSource
    ) -> None:
        self.managed = managed
        self.external = external

    @classmethod
    def from_paths(cls, paths: OkenPaths) -> "HostRegistry":
        return cls(
            ManagedHostStore(paths.hosts_file), ExternalHostSource(paths.ssh_config)
        )

    def load(self) -> list[HostEntry]:
        """Parse both sources and merge them.

        Raises:
            ConfigError: If hosts.toml is malformed
        """
        hosts = merge_hosts(self.managed.load(), self.external.load())
        logger.debug("Registry loaded", count=len(hosts))
        return hosts

    def resolve(self, query: str) -> HostEntry | None:
        """Exact alias lookup, bypassing ranking."""
        for entry in self.load():
            if entry.alias == query:
                return entry
        return None

    def require(self, query: str) -> HostEntry:
        """Exact alias lookup that fails loudly.

        Raises:
            ResolutionError: If no host has this alias
        """
        entry = self.resolve(query)
        if entry is None:
            raise ResolutionError(
                f"No host named '{query}'. Run `oken host list` to see known hosts."
            )
        return entry

    def filter_by_tag(self, tag: str) -> list[HostEntry]:
        """Hosts whose tag set contains ``tag`` (case-insensitive)."""
        return [entry for entry in self.load() if entry.has_tag(tag)]

    def find_by_destination(self, host: str) -> HostEntry | None:
        """Host whose alias or hostname equals ``host``; aliases take precedence."""
        hosts = self.load()
        for entry in hosts:
            if entry.alias == host:
                return entry
        for entry in hosts:
            if entry.hostname == host:
                return entry
        return None

    def _reject_external(self, alias: str) -> None:
        external = self.external.load().get(alias)
        if external is not None:
            raise ExternalHostError(alias, external.source)

    def add(self, entry: HostEntry) -> HostEntry:
        """Add a managed host.

        Raises:
            ExternalHostError: If the alias is defined in the ssh config
            DuplicateAliasError: If a managed host already uses the alias
        """
        self._reject_external(entry.alias)
        stored = entry.model_copy(
            update={"origin": Origin.MANAGED, "source": self.managed.path}
        )
        with self.managed.transaction() as entries:
            if entry.alias in entries:
                raise DuplicateAliasError(f"Host '{entry.alias}' already exists")
            entries[entry.alias] = stored

        logger.info("Host added", alias=entry.alias)
        return stored

    def remove(self, alias: str) -> HostEntry:
        """Remove a managed host.

        Raises:
            ExternalHostError: If the alias is defined in the ssh config
            UnknownHostError: If no managed host has this alias
        """
        with self.managed.transaction() as entries:
            if alias not in entries:
                self._reject_external(alias)
                raise UnknownHostError(f"Host '{alias}' not found")
            removed = entries.pop(alias)

        logger.info("Host removed", alias=alias)
        return removed

    def edit(self, alias: str, **changes: Any) -> HostEntry:
        """Change fields of a managed host.

        Args:
            alias: Host to edit
            **changes: New values for hostname, user, port, key_path or tags

        Returns:
            The updated entry

        Raises:
            ExternalHostError: If the alias is defined in the ssh config
            UnknownHostError: If no managed host has this alias
            RegistryError: If a field is unknown or a value is invalid
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise RegistryError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")

        with self.managed.transaction() as entries:
            current = entries.get(alias)
            if current is None:
                self._reject_external(alias)
                raise UnknownHostError(f"Host '{alias}' not found")
            try:
                updated = HostEntry.model_validate({**current.model_dump(), **changes})
            except ValidationError as e:
                raise RegistryError(f"Invalid value for host '{alias}': {e}") from e
            entries[alias] = updated

        logger.info("Host edited", alias=alias, fields=sorted(changes))
        return updated
