"""Connection history: append-only audit log plus a per-alias recency index.

The log (``audit.jsonl``) holds one JSON record per finished session in
append order. The index (``recency.json``) maps each alias to its latest
successful connection and remembers how many log bytes it has folded in, so
that reading recency never rescans the whole log: only bytes appended since
the last fold are parsed.
"""

import os
from collections import deque
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import AuditError
from .logging import get_logger
from .paths import OkenPaths
from .storage import atomic_write_text, file_lock

logger = get_logger(__name__)

# ssh reports connection-level failures (never reached the host) as 255
CONNECTION_FAILED_EXIT = 255


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionRecord(BaseModel):
    """One finished session. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    alias: str = Field(min_length=1, description="Host alias or literal target")
    target: str = Field(min_length=1, description="Destination handed to ssh")
    started_at: datetime = Field(default_factory=utc_now)
    duration: float = Field(ge=0.0, description="Seconds from first spawn to exit")
    exit_code: int = Field(description="Exit status propagated to the caller")

    @property
    def connected(self) -> bool:
        """Whether the session reached the remote host."""
        return self.exit_code != CONNECTION_FAILED_EXIT


class RecencyIndex(BaseModel):
    """Compact alias -> latest connection map derived from the log."""

    offset: int = Field(default=0, ge=0, description="Log bytes already folded in")
    latest: dict[str, datetime] = Field(default_factory=dict)

    def fold(self, record: ConnectionRecord) -> None:
        if not record.connected:
            return
        current = self.latest.get(record.alias)
        if current is None or record.started_at > current:
            self.latest[record.alias] = record.started_at


def _parse_line(line: bytes) -> ConnectionRecord | None:
    try:
        return ConnectionRecord.model_validate_json(line)
    except ValidationError as e:
        logger.warning("Skipping malformed audit record", error=str(e))
        return None


class AuditStore:
    """Durable session history shared by concurrent invocations."""

    def __init__(self, log_path: Path, index_path: Path) -> None:
        self.log_path = log_path
        self.index_path = index_path

    @classmethod
    def from_paths(cls, paths: OkenPaths) -> "AuditStore":
        return cls(paths.audit_log, paths.recency_index)

    def _log_size(self) -> int:
        try:
            return self.log_path.stat().st_size
        except FileNotFoundError:
            return 0

    def _read_index(self) -> RecencyIndex:
        try:
            return RecencyIndex.model_validate_json(self.index_path.read_bytes())
        except FileNotFoundError:
            return RecencyIndex()
        except (OSError, ValidationError) as e:
            logger.warning("Rebuilding recency index", reason=str(e))
            return RecencyIndex()

    def _write_index(self, index: RecencyIndex) -> None:
        atomic_write_text(self.index_path, index.model_dump_json())

    def _catch_up(self, index: RecencyIndex) -> RecencyIndex:
        """Fold every complete log line past ``index.offset`` into the index."""
        size = self._log_size()
        if size < index.offset:
            logger.info("Audit log shrank, rebuilding recency index")
            index = RecencyIndex()
        if size == index.offset:
            return index

        with open(self.log_path, "rb") as f:
            f.seek(index.offset)
            pending = f.read()

        consumed = pending.rfind(b"\n") + 1
        for line in pending[:consumed].splitlines():
            if not line.strip():
                continue
            record = _parse_line(line)
            if record is not None:
                index.fold(record)
        index.offset += consumed
        return index

    def append(self, record: ConnectionRecord) -> None:
        """Append ``record`` and fold it into the recency index.

        Safe against concurrent appends from other processes: the whole
        read-append-reindex sequence runs under an exclusive lock.

        Raises:
            AuditError: If the log or the index cannot be written
        """
        line = record.model_dump_json().encode("utf-8") + b"\n"
        try:
            with file_lock(self.log_path):
                index = self._read_index()
                size_before = self._log_size()
                with open(self.log_path, "ab") as f:
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())

                if index.offset == size_before:
                    index.fold(record)
                    index.offset = size_before + len(line)
                else:
                    index = self._catch_up(index)
                self._write_index(index)
        except OSError as e:
            raise AuditError(
                f"Failed to record session in {self.log_path}: {e}"
            ) from e

        logger.debug(
            "Session recorded",
            alias=record.alias,
            exit_code=record.exit_code,
            duration=round(record.duration, 3),
        )

    def recency_table(self) -> dict[str, datetime]:
        """Latest successful connection per alias.

        The common path reads only the compact index. Log bytes the index has
        not seen yet (written by an older version, or a lost index) are folded
        in under the lock and the index is persisted again.

        Raises:
            AuditError: If the history cannot be read
        """
        try:
            index = self._read_index()
            if index.offset == self._log_size():
                return dict(index.latest)

            with file_lock(self.log_path):
                index = self._catch_up(self._read_index())
                self._write_index(index)
            return dict(index.latest)
        except OSError as e:
            raise AuditError(
                f"Failed to read history from {self.log_path}: {e}"
            ) from e

    def recency(self, alias: str) -> datetime | None:
        """Most recent successful connection time for ``alias``."""
        return self.recency_table().get(alias)

    def records(self) -> Iterator[ConnectionRecord]:
        """All records in append (chronological) order.

        Raises:
            AuditError: If the log cannot be read
        """
        try:
            with file_lock(self.log_path, shared=True):
                with open(self.log_path, "rb") as f:
                    lines = f.read().splitlines()
        except FileNotFoundError:
            return
        except OSError as e:
            raise AuditError(
                f"Failed to read history from {self.log_path}: {e}"
            ) from e

        for line in lines:
            if line.strip():
                record = _parse_line(line)
                if record is not None:
                    yield record

    def recent(self, count: int) -> list[ConnectionRecord]:
        """The last ``count`` records, newest first."""
        if count <= 0:
            return []
        tail = deque(self.records(), maxlen=count)
        return list(reversed(tail))
