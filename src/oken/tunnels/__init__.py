"""Saved background tunnels controlled through ssh control sockets."""

from .manager import TunnelManager
from .models import ForwardKind, ForwardSpec, TunnelInfo, TunnelProfile, TunnelStatus
from .store import TunnelProfileStore

__all__ = [
    "ForwardKind",
    "ForwardSpec",
    "TunnelInfo",
    "TunnelManager",
    "TunnelProfile",
    "TunnelProfileStore",
    "TunnelStatus",
]
