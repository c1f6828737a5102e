"""Foreground ssh session supervision.

A session moves through an explicit state machine::

    CONNECTING -> CONNECTED -> RECONNECTING -> CONNECTING ...
                            -> TERMINAL_EXIT

Only ssh's connection-failure status (255) triggers a reconnect, bounded by
the configured retry count for this invocation. Any other status ends the
session and is returned unchanged.
"""

import signal
import subprocess
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .config import Config
from .exceptions import AuditError
from .history import CONNECTION_FAILED_EXIT, AuditStore, ConnectionRecord, utc_now
from .hosts.models import HostEntry
from .logging import get_logger
from .process import SSHBinary, exit_code_of, forward_signal
from .ssh_args import extract_destination, has_option

logger = get_logger(__name__)

EXIT_ERROR = 1
EXIT_DECLINED = 77
EXIT_NOT_FOUND = 127
EXIT_CANCELLED = 130

KEEPALIVE_OPTION = "ServerAliveInterval"


class SessionState(str, Enum):
    """Supervisor states."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    TERMINAL_EXIT = "terminal_exit"
    DECLINED = "declined"


@dataclass(frozen=True)
class ConnectionTarget:
    """What to connect to: a registry host or literal ssh arguments."""

    alias: str
    args: tuple[str, ...]
    destination: str
    tags: tuple[str, ...] = ()

    @classmethod
    def from_host(cls, entry: HostEntry) -> "ConnectionTarget":
        return cls(
            alias=entry.alias,
            args=tuple(entry.ssh_args()),
            destination=entry.destination,
            tags=entry.tags,
        )

    @classmethod
    def literal(
        cls, args: Sequence[str], host: HostEntry | None = None
    ) -> "ConnectionTarget":
        """Passthrough arguments, borrowing tags from a matching known host."""
        destination = extract_destination(list(args)) or " ".join(args)
        return cls(
            alias=host.alias if host is not None else destination,
            args=tuple(args),
            destination=destination,
            tags=host.tags if host is not None else (),
        )


@dataclass(frozen=True)
class ConnectOptions:
    """Per-invocation overrides from the command line."""

    assume_yes: bool = False
    no_reconnect: bool = False


@dataclass
class SessionResult:
    """Outcome of one supervised invocation."""

    exit_code: int
    state: SessionState
    attempts: int = 0
    duration: float = 0.0
    transitions: list[SessionState] = field(default_factory=list)


Confirmer = Callable[[ConnectionTarget, list[str]], bool]


def inject_keepalive(config: Config, args: Sequence[str]) -> list[str]:
    """Prepend keep-alive options unless the user already set them.

    The options go ahead of the user's arguments since anything after the
    destination would be sent as the remote command.

    Args:
        config: Settings with the keep-alive interval and count
        args: User ssh arguments

    Returns:
        Arguments for ssh
    """
    if has_option(list(args), KEEPALIVE_OPTION):
        return list(args)
    return [
        "-o",
        f"{KEEPALIVE_OPTION}={config.keepalive_interval}",
        "-o",
        f"ServerAliveCountMax={config.keepalive_count_max}",
        *args,
    ]


@contextmanager
def _sigint_handler(handler: Callable[[int, Any], None]) -> Iterator[None]:
    """Install ``handler`` for SIGINT, restoring the previous one on exit.

    Signal handlers can only be set from the main thread; elsewhere this is a
    no-op and SIGINT keeps its current disposition.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


class ConnectionSupervisor:
    """Runs one interactive ssh session with confirmation, keep-alive and retry."""

    def __init__(
        self,
        config: Config,
        ssh: SSHBinary,
        audit: AuditStore | None = None,
        confirm: Confirmer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.ssh = ssh
        self.audit = audit
        self.confirm = confirm
        self.clock = clock
        self._cancel = threading.Event()
        self._child: "subprocess.Popen[bytes] | None" = None

    def build_args(self, target: ConnectionTarget) -> list[str]:
        """Final ssh arguments for ``target``."""
        return inject_keepalive(self.config, target.args)

    def danger_tags(self, target: ConnectionTarget) -> list[str]:
        """Tags of ``target`` that require confirmation."""
        return [tag for tag in target.tags if self.config.is_danger_tag(tag)]

    def _preflight(self, target: ConnectionTarget, options: ConnectOptions) -> bool:
        dangerous = self.danger_tags(target)
        if not dangerous or options.assume_yes:
            return True
        if self.confirm is None:
            logger.warning(
                "No confirmation available for tagged host", alias=target.alias
            )
            return False
        return self.confirm(target, dangerous)

    def _on_sigint(self, signum: int, frame: Any) -> None:
        child = self._child
        if child is not None and child.poll() is None:
            forward_signal(child, signum)
        else:
            self._cancel.set()

    def _reconnect_allowed(
        self, code: int, attempts: int, options: ConnectOptions
    ) -> bool:
        policy = self.config.reconnect
        return (
            code == CONNECTION_FAILED_EXIT
            and policy.enabled
            and not options.no_reconnect
            and attempts < policy.retries
        )

    def connect(
        self, target: ConnectionTarget, options: ConnectOptions | None = None
    ) -> SessionResult:
        """Supervise a session until it ends for good.

        Args:
            target: Host or literal arguments to connect with
            options: Command-line overrides

        Returns:
            Result whose exit code is ssh's own status (or EXIT_DECLINED)

        Raises:
            SupervisorError: If ssh cannot be spawned
        """
        options = options or ConnectOptions()
        if not self._preflight(target, options):
            logger.info("Connection declined", alias=target.alias)
            return SessionResult(exit_code=EXIT_DECLINED, state=SessionState.DECLINED)

        args = self.build_args(target)
        started_at = utc_now()
        start = self.clock()
        attempts = 0
        code = 0
        transitions: list[SessionState] = []
        self._cancel.clear()

        with _sigint_handler(self._on_sigint):
            while True:
                transitions.append(SessionState.CONNECTING)
                self._child = self.ssh.spawn(args)
                transitions.append(SessionState.CONNECTED)
                try:
                    code = exit_code_of(self._child.wait())
                finally:
                    self._child = None

                if not self._reconnect_allowed(code, attempts, options):
                    break

                transitions.append(SessionState.RECONNECTING)
                delay = self.config.reconnect.delay
                logger.warning(
                    "Connection lost, reconnecting",
                    alias=target.alias,
                    attempt=attempts + 1,
                    max_attempts=self.config.reconnect.retries,
                    delay=delay,
                )
                if self._cancel.wait(delay):
                    logger.info("Reconnect cancelled", alias=target.alias)
                    break
                attempts += 1

        transitions.append(SessionState.TERMINAL_EXIT)
        duration = max(self.clock() - start, 0.0)
        self._record(target, started_at, duration, code)
        logger.info(
            "Session finished", alias=target.alias, exit_code=code, attempts=attempts
        )
        return SessionResult(
            exit_code=code,
            state=SessionState.TERMINAL_EXIT,
            attempts=attempts,
            duration=duration,
            transitions=transitions,
        )

    def _record(
        self,
        target: ConnectionTarget,
        started_at: datetime,
        duration: float,
        code: int,
    ) -> None:
        if self.audit is None:
            return
        try:
            self.audit.append(
                ConnectionRecord(
                    alias=target.alias,
                    target=target.destination,
                    started_at=started_at,
                    duration=duration,
                    exit_code=code,
                )
            )
        except AuditError as e:
            logger.warning(
                "Failed to record session", alias=target.alias, error=str(e)
            )
