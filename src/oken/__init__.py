"""oken - a smarter ssh front end."""

__version__ = "0.1.0"

# Configuration
from .config import Config, ReconnectConfig, load_config

# Errors
from .exceptions import (
    AuditError,
    BinaryNotFoundError,
    ConfigError,
    DuplicateAliasError,
    ExternalHostError,
    OkenError,
    RegistryError,
    ResolutionError,
    SupervisorError,
    TunnelError,
    UnknownHostError,
)

# History
from .history import AuditStore, ConnectionRecord

# Hosts
from .hosts import HostEntry, HostRegistry, Origin, merge_hosts
from .logging import get_logger, setup_logging

# Ranking and picking
from .matcher import Query, RankedHost, parse_query, rank, score
from .paths import OkenPaths
from .picker import Picker, PickerState
from .process import SSHBinary, find_ssh

# Sessions
from .supervisor import (
    ConnectionSupervisor,
    ConnectionTarget,
    ConnectOptions,
    SessionResult,
    SessionState,
)

# Tunnels
from .tunnels import ForwardSpec, TunnelManager, TunnelProfile, TunnelStatus

__all__ = [
    "__version__",
    "AuditError",
    "AuditStore",
    "BinaryNotFoundError",
    "Config",
    "ConfigError",
    "ConnectionRecord",
    "ConnectionSupervisor",
    "ConnectionTarget",
    "ConnectOptions",
    "DuplicateAliasError",
    "ExternalHostError",
    "ForwardSpec",
    "HostEntry",
    "HostRegistry",
    "OkenError",
    "OkenPaths",
    "Origin",
    "Picker",
    "PickerState",
    "Query",
    "RankedHost",
    "ReconnectConfig",
    "RegistryError",
    "ResolutionError",
    "SessionResult",
    "SessionState",
    "SSHBinary",
    "SupervisorError",
    "TunnelError",
    "TunnelManager",
    "TunnelProfile",
    "TunnelStatus",
    "UnknownHostError",
    "find_ssh",
    "get_logger",
    "load_config",
    "merge_hosts",
    "parse_query",
    "rank",
    "score",
    "setup_logging",
]
