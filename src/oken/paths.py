"""Filesystem locations used by oken."""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

APP_NAME = "oken"


def _env_dir(override: str, xdg: str, fallback: str) -> Path:
    if value := os.environ.get(override):
        return Path(value).expanduser()
    if value := os.environ.get(xdg):
        return Path(value).expanduser() / APP_NAME
    return Path(fallback).expanduser() / APP_NAME


class OkenPaths(BaseModel):
    """Resolved configuration and data locations.

    Nothing is created on construction; stores create their parent
    directories lazily on first write.
    """

    model_config = ConfigDict(frozen=True)

    config_dir: Path = Field(description="Directory holding user-edited files")
    data_dir: Path = Field(description="Directory holding history and sockets")
    ssh_config: Path = Field(
        default_factory=lambda: Path("~/.ssh/config").expanduser(),
        description="External host source",
    )

    @classmethod
    def from_env(cls) -> "OkenPaths":
        """Resolve locations from OKEN_* and XDG_* environment variables."""
        return cls(
            config_dir=_env_dir("OKEN_CONFIG_DIR", "XDG_CONFIG_HOME", "~/.config"),
            data_dir=_env_dir("OKEN_DATA_DIR", "XDG_DATA_HOME", "~/.local/share"),
        )

    @property
    def config_file(self) -> Path:
        return self.config_dir / "config.toml"

    @property
    def hosts_file(self) -> Path:
        return self.config_dir / "hosts.toml"

    @property
    def tunnels_file(self) -> Path:
        return self.config_dir / "tunnels.toml"

    @property
    def audit_log(self) -> Path:
        return self.data_dir / "audit.jsonl"

    @property
    def recency_index(self) -> Path:
        return self.data_dir / "recency.json"

    @property
    def socket_dir(self) -> Path:
        return self.data_dir / "tunnels"
