"""User settings for oken.

Settings are read once per invocation from ``config.toml``; every field has a
default so a missing file yields a fully defined configuration.

Example::

    keepalive_interval = 30
    danger_tags = ["prod", "billing"]

    [reconnect]
    enabled = true
    retries = 5
    delay = 2
"""

from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigError
from .logging import get_logger
from .storage import read_toml

logger = get_logger(__name__)

DEFAULT_DANGER_TAGS = frozenset({"prod", "production"})

# Flat keys accepted for compatibility with older config files
_LEGACY_RECONNECT_KEYS = {
    "reconnect_retries": "retries",
    "reconnect_delay_secs": "delay",
}


class ReconnectConfig(BaseModel):
    """Reconnect policy for dropped sessions (ssh exit code 255)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(default=True, description="Respawn ssh on exit code 255")
    retries: int = Field(default=3, ge=0, le=100, description="Maximum respawns")
    delay: float = Field(
        default=5.0, ge=0.0, le=3600.0, description="Seconds to wait before a respawn"
    )


class Config(BaseModel):
    """Immutable settings snapshot for one invocation."""

    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)

    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    keepalive_interval: int = Field(
        default=60, ge=1, le=86400, description="ServerAliveInterval in seconds"
    )
    keepalive_count_max: int = Field(
        default=3, ge=1, le=100, description="ServerAliveCountMax"
    )
    danger_tags: frozenset[str] = Field(
        default=DEFAULT_DANGER_TAGS,
        description="Tags that require confirmation before connecting",
    )
    ssh_binary: Path | None = Field(
        default=None, description="Explicit ssh executable, skips PATH lookup"
    )

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_keys(cls, data: Any) -> Any:
        """Fold ``reconnect = <bool>`` and ``reconnect_*`` keys into the table."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        reconnect = data.get("reconnect")
        if isinstance(reconnect, bool):
            reconnect = {"enabled": reconnect}
        reconnect = dict(reconnect or {})

        for legacy_key, field_name in _LEGACY_RECONNECT_KEYS.items():
            if legacy_key in data:
                reconnect.setdefault(field_name, data.pop(legacy_key))

        if reconnect:
            data["reconnect"] = reconnect
        return data

    @field_validator("danger_tags", mode="before")
    @classmethod
    def normalize_danger_tags(cls, v: Any) -> Any:
        """Danger tags compare case-insensitively."""
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(tag).strip().lower() for tag in v if str(tag).strip())
        return v

    @field_validator("ssh_binary", mode="before")
    @classmethod
    def expand_ssh_binary(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip():
            return Path(v.strip()).expanduser()
        return v

    def is_danger_tag(self, tag: str) -> bool:
        """Check whether a host tag requires confirmation."""
        return tag.lower() in self.danger_tags


def load_config(path: Path) -> Config:
    """Merge user overrides from ``path`` over the defaults.

    Args:
        path: Location of config.toml (missing file means all defaults)

    Returns:
        Frozen configuration

    Raises:
        ConfigError: If the file is unreadable, not TOML, or has invalid values
    """
    data = read_toml(path)
    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.debug(
        "Configuration loaded",
        path=str(path),
        from_file=bool(data),
        reconnect=config.reconnect.enabled,
        retries=config.reconnect.retries,
    )
    return config
