"""Host models.

A host entry carries its origin explicitly: entries from oken's own store are
``MANAGED`` and may be changed; entries from the user's ssh config are
``EXTERNAL`` and read-only.
"""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import validate_port


class Origin(str, Enum):
    """Where a host entry was defined."""

    MANAGED = "managed"
    EXTERNAL = "external"


class HostEntry(BaseModel):
    """A connectable host, immutable once built."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    alias: str = Field(min_length=1, description="Unique short name")
    hostname: str = Field(min_length=1, description="Address or DNS name")
    user: str | None = Field(default=None, description="Login user")
    port: int | None = Field(default=None, description="SSH port")
    key_path: str | None = Field(default=None, description="Identity file")
    tags: tuple[str, ...] = Field(default=(), description="Free-form labels")
    origin: Origin = Field(default=Origin.MANAGED, description="Defining source")
    source: Path | None = Field(default=None, description="File defining the entry")

    @field_validator("user", "key_path", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("port")
    @classmethod
    def check_port(cls, v: int | None) -> int | None:
        if v is not None:
            validate_port(v, "SSH port")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: Any) -> Any:
        """Strip tags and drop empty or case-insensitive duplicates."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        seen: set[str] = set()
        tags: list[str] = []
        for tag in v:
            tag = str(tag).strip()
            if tag and tag.lower() not in seen:
                seen.add(tag.lower())
                tags.append(tag)
        return tuple(tags)

    @property
    def is_managed(self) -> bool:
        return self.origin == Origin.MANAGED

    @property
    def destination(self) -> str:
        """``user@hostname`` or just ``hostname``."""
        if self.user:
            return f"{self.user}@{self.hostname}"
        return self.hostname

    def has_tag(self, tag: str) -> bool:
        """Case-insensitive tag membership."""
        wanted = tag.strip().lower()
        return any(t.lower() == wanted for t in self.tags)

    def ssh_args(self) -> list[str]:
        """Arguments that make ssh reach this host.

        External entries connect by alias so that every option in the user's
        ssh config (proxies, agents, ...) still applies.
        """
        if self.origin == Origin.EXTERNAL:
            return [self.alias]

        args = [self.destination]
        if self.port is not None:
            args.extend(["-p", str(self.port)])
        if self.key_path:
            args.extend(["-i", self.key_path])
        return args
