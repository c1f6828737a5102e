"""Background tunnel lifecycle without a daemon or PID files.

Each profile maps to one ssh ControlMaster socket under the data directory.
The socket is the only source of truth for liveness: ``ssh -O check`` tells
whether the master behind it still answers.
"""

from pathlib import Path

from ..exceptions import TunnelError
from ..hosts.registry import HostRegistry
from ..logging import get_logger
from ..paths import OkenPaths
from ..process import SSHBinary
from ..ssh_args import split_flags
from ..utils import validate_name
from .models import TunnelInfo, TunnelProfile, TunnelStatus
from .store import TunnelProfileStore

logger = get_logger(__name__)

SOCKET_SUFFIX = ".sock"


class TunnelManager:
    """Start, stop, list and remove saved tunnels."""

    def __init__(
        self,
        store: TunnelProfileStore,
        socket_dir: Path,
        ssh: SSHBinary | None = None,
        registry: HostRegistry | None = None,
    ) -> None:
        self.store = store
        self.socket_dir = socket_dir
        self._ssh = ssh
        self.registry = registry

    @classmethod
    def from_paths(
        cls, paths: OkenPaths, ssh: SSHBinary | None = None
    ) -> "TunnelManager":
        return cls(
            TunnelProfileStore(paths.tunnels_file),
            paths.socket_dir,
            ssh,
            HostRegistry.from_paths(paths),
        )

    @property
    def ssh(self) -> SSHBinary:
        """The ssh binary, located on first use."""
        if self._ssh is None:
            self._ssh = SSHBinary()
        return self._ssh

    def control_path(self, name: str) -> Path:
        """Control socket path for a profile; the same name always maps here."""
        return self.socket_dir / f"{validate_name(name, 'Tunnel name')}{SOCKET_SUFFIX}"

    def profiles(self) -> list[TunnelProfile]:
        profiles = self.store.load()
        return [profiles[name] for name in sorted(profiles)]

    def get(self, name: str) -> TunnelProfile:
        """Look up a saved profile.

        Raises:
            TunnelError: If no profile has this name
        """
        profile = self.store.load().get(name)
        if profile is None:
            raise TunnelError(
                f"Tunnel '{name}' not found. Run `oken tunnel list` to see tunnels."
            )
        return profile

    def add(self, profile: TunnelProfile, replace: bool = False) -> TunnelProfile:
        """Save a profile.

        Raises:
            TunnelError: If the name is taken and ``replace`` is False
        """
        with self.store.transaction() as profiles:
            if profile.name in profiles and not replace:
                raise TunnelError(f"Tunnel '{profile.name}' already exists")
            profiles[profile.name] = profile

        logger.info("Tunnel saved", name=profile.name, target=profile.target)
        return profile

    def _destination_args(self, profile: TunnelProfile) -> list[str]:
        """Flags and destination for the profile's target.

        A target naming a registry host uses that host's connection details;
        anything else is handed to ssh as a literal destination.
        """
        entry = self.registry.resolve(profile.target) if self.registry else None
        if entry is None:
            return [profile.target]
        flags, positionals = split_flags(entry.ssh_args())
        return [*flags, *positionals]

    def _control(self, profile: TunnelProfile, command: str) -> int:
        path = self.control_path(profile.name)
        args = ["-S", str(path), "-O", command, *self._destination_args(profile)]
        try:
            return self.ssh.run(args, quiet=True).returncode
        except OSError as e:
            raise TunnelError(
                f"Failed to run ssh for tunnel '{profile.name}': {e}"
            ) from e

    def probe(self, profile: TunnelProfile) -> bool:
        """Check whether the profile's master is alive. Never changes state."""
        if not self.control_path(profile.name).exists():
            return False
        return self._control(profile, "check") == 0

    def start(self, name: str) -> TunnelStatus:
        """Start a tunnel in the background.

        Returns:
            STARTED, or ALREADY_RUNNING if its master already answers

        Raises:
            TunnelError: If the profile is unknown or ssh fails to start it
        """
        profile = self.get(name)
        if self.probe(profile):
            logger.info("Tunnel already running", name=name)
            return TunnelStatus.ALREADY_RUNNING

        path = self.control_path(name)
        path.unlink(missing_ok=True)
        self.socket_dir.mkdir(parents=True, exist_ok=True, mode=0o700)

        args = [
            "-f",
            "-N",
            "-M",
            "-S",
            str(path),
            "-o",
            "ExitOnForwardFailure=yes",
            *profile.forward_args(),
            *profile.extra_args,
            *self._destination_args(profile),
        ]
        try:
            result = self.ssh.run(args)
        except OSError as e:
            raise TunnelError(f"Failed to start tunnel '{name}': {e}") from e

        if result.returncode != 0:
            raise TunnelError(
                f"ssh exited with status {result.returncode} "
                f"while starting tunnel '{name}'",
                exit_code=result.returncode,
            )

        logger.info("Tunnel started", name=name, control_path=str(path))
        return TunnelStatus.STARTED

    def stop(self, name: str) -> TunnelStatus:
        """Ask a tunnel's master to exit.

        Returns:
            STOPPED, or NOT_RUNNING if there was nothing to stop

        Raises:
            TunnelError: If the profile is unknown or a live master refuses
        """
        profile = self.get(name)
        path = self.control_path(name)
        if not path.exists():
            return TunnelStatus.NOT_RUNNING

        code = self._control(profile, "exit")
        if code == 0:
            logger.info("Tunnel stopped", name=name)
            return TunnelStatus.STOPPED

        if not self.probe(profile):
            path.unlink(missing_ok=True)
            logger.info("Removed stale control socket", name=name, path=str(path))
            return TunnelStatus.NOT_RUNNING

        raise TunnelError(
            f"ssh exited with status {code} while stopping tunnel '{name}'",
            exit_code=code,
        )

    def list(self) -> list[TunnelInfo]:
        """Every saved profile with its probed state, sorted by name."""
        return [
            TunnelInfo(
                profile=profile,
                running=self.probe(profile),
                control_path=self.control_path(profile.name),
            )
            for profile in self.profiles()
        ]

    def remove(self, name: str) -> TunnelProfile:
        """Stop a tunnel if it runs, then delete its profile.

        Raises:
            TunnelError: If the profile is unknown or stopping fails
        """
        self.stop(name)
        with self.store.transaction() as profiles:
            removed = profiles.pop(name, None)
        if removed is None:
            raise TunnelError(f"Tunnel '{name}' not found")

        logger.info("Tunnel removed", name=name)
        return removed
