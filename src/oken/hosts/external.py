"""Read-only host source backed by the user's OpenSSH client config."""

import glob
import io
from pathlib import Path

from paramiko.config import SSHConfig
from paramiko.ssh_exception import ConfigParseError
from pydantic import ValidationError

from ..logging import get_logger
from .models import HostEntry, Origin

logger = get_logger(__name__)

MAX_INCLUDE_DEPTH = 16
PATTERN_CHARS = ("*", "?", "!")


def _is_concrete_alias(alias: str) -> bool:
    return not any(char in alias for char in PATTERN_CHARS)


class ExternalHostSource:
    """Lists concrete ``Host`` aliases from ``~/.ssh/config``.

    ``Include`` directives are expanded in place before the text is handed to
    paramiko, which does not follow them itself.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._base_dir = path.parent

    def _expand(self, path: Path, depth: int = 0) -> list[str]:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug(
                "Skipping unreadable ssh config", path=str(path), error=str(e)
            )
            return []

        lines: list[str] = []
        for line in text.splitlines():
            parts = line.strip().replace("=", " ", 1).split(None, 1)
            if len(parts) != 2 or parts[0].lower() != "include":
                lines.append(line)
                continue
            value = parts[1]
            if depth >= MAX_INCLUDE_DEPTH:
                logger.warning("ssh config Include nested too deeply", path=str(path))
                continue
            for pattern in value.split():
                lines.extend(self._expand_include(pattern, depth + 1))
        return lines

    def _expand_include(self, pattern: str, depth: int) -> list[str]:
        expanded = Path(pattern).expanduser()
        if not expanded.is_absolute():
            expanded = self._base_dir / expanded

        lines: list[str] = []
        for match in sorted(glob.glob(str(expanded))):
            candidate = Path(match)
            if candidate.is_file():
                lines.extend(self._expand(candidate, depth))
        return lines

    def _parse(self) -> SSHConfig | None:
        if not self.path.is_file():
            return None
        config = SSHConfig()
        try:
            config.parse(io.StringIO("\n".join(self._expand(self.path))))
        except ConfigParseError as e:
            logger.warning(
                "Ignoring unparsable ssh config", path=str(self.path), error=str(e)
            )
            return None
        return config

    def load(self) -> dict[str, HostEntry]:
        """Build read-only entries for every concrete alias.

        Returns:
            Entries by alias; empty when the file is missing or unparsable
        """
        config = self._parse()
        if config is None:
            return {}

        entries: dict[str, HostEntry] = {}
        for alias in sorted(config.get_hostnames()):
            if not _is_concrete_alias(alias):
                continue
            entry = self._build_entry(config, alias)
            if entry is not None:
                entries[alias] = entry

        logger.debug("External hosts loaded", path=str(self.path), count=len(entries))
        return entries

    def _build_entry(self, config: SSHConfig, alias: str) -> HostEntry | None:
        try:
            options = config.lookup(alias)
        except Exception as e:  # Match exec and token expansion may raise anything
            logger.debug("ssh config lookup failed", alias=alias, error=str(e))
            options = {}

        identity_files = options.get("identityfile") or []
        port = options.get("port")
        try:
            return HostEntry(
                alias=alias,
                hostname=options.get("hostname") or alias,
                user=options.get("user"),
                port=int(port) if port and str(port).isdigit() else None,
                key_path=identity_files[0] if identity_files else None,
                origin=Origin.EXTERNAL,
                source=self.path,
            )
        except ValidationError as e:
            logger.warning(
                "Skipping invalid ssh config host", alias=alias, error=str(e)
            )
            return None
