"""Custom exceptions for oken."""

from pathlib import Path


class OkenError(Exception):
    """Base exception for all oken errors."""

    pass


class ConfigError(OkenError):
    """Raised when settings or a state file are malformed or unreadable."""

    pass


class RegistryError(OkenError):
    """Raised when a host registry operation is rejected."""

    pass


class DuplicateAliasError(RegistryError):
    """Raised when adding a managed host whose alias is already taken."""

    pass


class UnknownHostError(RegistryError):
    """Raised when a managed host alias does not exist."""

    pass


class ExternalHostError(RegistryError):
    """Raised when a mutation targets a host owned by an external source."""

    def __init__(self, alias: str, source: Path | str | None) -> None:
        self.alias = alias
        self.source = str(source) if source is not None else "~/.ssh/config"
        super().__init__(
            f"Host '{alias}' is defined in {self.source} and is read-only here; "
            f"edit it in {self.source} instead"
        )


class ResolutionError(OkenError):
    """Raised when a query does not resolve to a usable host."""

    pass


class SupervisorError(OkenError):
    """Raised when the ssh binary cannot be located or spawned."""

    pass


class BinaryNotFoundError(SupervisorError):
    """Raised when the ssh binary is not found or not executable."""

    pass


class TunnelError(OkenError):
    """Raised when a tunnel profile, probe or spawn operation fails."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class AuditError(OkenError):
    """Raised when the connection history cannot be written or read."""

    pass
