"""Process management for the ssh binary."""

import os
import shutil
import signal
import subprocess
import sys
from pathlib import Path

from .exceptions import BinaryNotFoundError, SupervisorError
from .logging import get_logger

logger = get_logger(__name__)

SSH_BINARY_NAME = "ssh"
FALLBACK_LOCATIONS = ("/usr/bin/ssh", "/usr/local/bin/ssh")


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.resolve(strict=True) == b.resolve(strict=True)
    except OSError:
        return False


def _own_executable() -> Path | None:
    """Path of the script this process was launched as, if it is a file."""
    argv0 = sys.argv[0] if sys.argv else ""
    if not argv0:
        return None
    located = shutil.which(argv0) if os.sep not in argv0 else argv0
    if located is None:
        return None
    path = Path(located)
    return path if path.is_file() else None


def find_ssh(
    search_path: str | None = None, own_executable: Path | None = None
) -> Path:
    """Find the system ssh binary.

    Any candidate that resolves to our own executable is skipped, so that
    installing oken under the name ``ssh`` does not make it call itself.

    Args:
        search_path: PATH-style directory list (defaults to $PATH)
        own_executable: Path to skip (defaults to the running script)

    Returns:
        Path to an executable ssh binary

    Raises:
        BinaryNotFoundError: If no usable binary exists
    """
    own = own_executable if own_executable is not None else _own_executable()
    path_var = search_path if search_path is not None else os.environ.get("PATH", "")

    candidates = [Path(d) / SSH_BINARY_NAME for d in path_var.split(os.pathsep) if d]
    candidates.extend(Path(p) for p in FALLBACK_LOCATIONS)

    for candidate in candidates:
        if not candidate.is_file() or not os.access(candidate, os.X_OK):
            continue
        if own is not None and _same_file(candidate, own):
            logger.debug(
                "Skipping ssh candidate that is ourselves", path=str(candidate)
            )
            continue
        return candidate

    raise BinaryNotFoundError("Could not find an ssh binary on PATH")


class SSHBinary:
    """Spawn primitive shared by the supervisor and the tunnel manager."""

    def __init__(self, binary_path: Path | str | None = None) -> None:
        """Initialize with an explicit binary or locate one on PATH.

        Args:
            binary_path: Path to the ssh executable (auto-detected if None)

        Raises:
            BinaryNotFoundError: If the binary doesn't exist or isn't executable
        """
        self.binary_path = Path(binary_path) if binary_path else find_ssh()
        self._validate_path()
        logger.debug("ssh binary selected", binary_path=str(self.binary_path))

    def _validate_path(self) -> None:
        if not self.binary_path.exists():
            raise BinaryNotFoundError(f"Binary not found: {self.binary_path}")

        if not self.binary_path.is_file():
            raise BinaryNotFoundError(f"Binary path is not a file: {self.binary_path}")

        if not os.access(self.binary_path, os.X_OK):
            raise BinaryNotFoundError(f"Binary is not executable: {self.binary_path}")

    def command(self, args: list[str]) -> list[str]:
        """Full argv for running ssh with ``args``."""
        return [str(self.binary_path), *args]

    def spawn(self, args: list[str]) -> "subprocess.Popen[bytes]":
        """Start ssh attached to our terminal (inherited standard streams).

        Raises:
            SupervisorError: If the process cannot be started
        """
        logger.info("Spawning ssh", args=args)
        try:
            return subprocess.Popen(self.command(args))
        except OSError as e:
            logger.error("Failed to spawn ssh", error=str(e))
            raise SupervisorError(f"Failed to start {self.binary_path}: {e}") from e

    def run(
        self, args: list[str], quiet: bool = False
    ) -> "subprocess.CompletedProcess[bytes]":
        """Run ssh to completion and return its status.

        Args:
            args: Arguments after the binary name
            quiet: Discard all output and detach stdin (used for probes)

        Raises:
            OSError: If the process cannot be started
        """
        logger.debug("Running ssh", args=args, quiet=quiet)
        if quiet:
            return subprocess.run(
                self.command(args),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        return subprocess.run(
            self.command(args), stdout=subprocess.DEVNULL, check=False
        )


def exit_code_of(returncode: int) -> int:
    """Map a Popen return code to a process exit status.

    Children killed by a signal report ``-N``; shells expose that as ``128 + N``.
    """
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


def forward_signal(process: "subprocess.Popen[bytes]", signum: int) -> None:
    """Deliver ``signum`` to ``process`` if it is still alive."""
    if process.poll() is not None:
        return
    try:
        process.send_signal(signum)
        logger.debug(
            "Forwarded signal to ssh",
            signal=signal.Signals(signum).name,
            pid=process.pid,
        )
    except ProcessLookupError:
        pass
