"""Host registry: managed hosts.toml merged with the user's ssh config."""

from .external import ExternalHostSource
from .managed import ManagedHostStore
from .models import HostEntry, Origin
from .registry import HostRegistry, merge_hosts

__all__ = [
    "ExternalHostSource",
    "HostEntry",
    "HostRegistry",
    "ManagedHostStore",
    "Origin",
    "merge_hosts",
]
