"""Tunnel profile models.

A profile is pure data: where to connect and which forwards to open. Whether
a tunnel is running is never stored; it is probed from the control socket.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..ssh_args import FLAGS_WITH_VALUES, FORWARD_FLAGS
from ..utils import validate_name, validate_non_empty_string


class ForwardKind(str, Enum):
    """ssh port forwarding flavours."""

    LOCAL = "L"
    REMOTE = "R"
    DYNAMIC = "D"

    @property
    def flag(self) -> str:
        return f"-{self.value}"


class TunnelStatus(str, Enum):
    """Outcome of a start or stop request."""

    STARTED = "started"
    ALREADY_RUNNING = "already_running"
    STOPPED = "stopped"
    NOT_RUNNING = "not_running"


class ForwardSpec(BaseModel):
    """One ``-L``/``-R``/``-D`` forward, e.g. ``8080:localhost:80``."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    kind: ForwardKind = Field(description="Forward direction")
    spec: str = Field(min_length=1, description="Forward specification for ssh")

    @classmethod
    def parse(cls, text: str) -> "ForwardSpec":
        """Parse the stored form ``-L 8080:localhost:80``.

        Raises:
            ValueError: If the text does not start with a forward flag
        """
        flag, _, spec = text.strip().partition(" ")
        if flag not in FORWARD_FLAGS:
            raise ValueError(f"Invalid forward '{text}': expected -L, -R or -D")
        return cls(kind=ForwardKind(flag[1:]), spec=spec)

    def to_args(self) -> list[str]:
        return [self.kind.flag, self.spec]

    def __str__(self) -> str:
        return f"{self.kind.flag} {self.spec}"


class TunnelProfile(BaseModel):
    """A saved background tunnel."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(description="Unique profile name")
    target: str = Field(description="Host alias or literal destination")
    forwards: tuple[ForwardSpec, ...] = Field(default=(), description="Forwards")
    extra_args: tuple[str, ...] = Field(
        default=(), description="Other ssh flags passed through unchanged"
    )

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_name(v, "Tunnel name")

    @field_validator("target")
    @classmethod
    def check_target(cls, v: str) -> str:
        return validate_non_empty_string(v, "Tunnel target")

    @field_validator("forwards", mode="before")
    @classmethod
    def parse_forwards(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return tuple(ForwardSpec.parse(f) if isinstance(f, str) else f for f in v)
        return v

    @classmethod
    def from_args(cls, name: str, args: list[str]) -> "TunnelProfile":
        """Build a profile from an ssh command line.

        Forward flags become ``forwards``, other flags are kept in
        ``extra_args`` and the single positional argument is the target.

        Raises:
            ValueError: If there is no target or a remote command follows it
        """
        forwards: list[ForwardSpec] = []
        extra: list[str] = []
        positionals: list[str] = []
        index = 0
        while index < len(args):
            arg = args[index]
            if arg in FORWARD_FLAGS and index + 1 < len(args):
                forwards.append(
                    ForwardSpec(kind=ForwardKind(arg[1:]), spec=args[index + 1])
                )
                index += 2
                continue
            if arg in FLAGS_WITH_VALUES and index + 1 < len(args):
                extra.extend(args[index : index + 2])
                index += 2
                continue
            if arg.startswith("-"):
                extra.append(arg)
            else:
                positionals.append(arg)
            index += 1

        if not positionals:
            raise ValueError("No target host found in arguments")
        if len(positionals) > 1:
            command = " ".join(positionals[1:])
            raise ValueError(
                f"Tunnels cannot run a remote command: unexpected '{command}'"
            )
        return cls(
            name=name,
            target=positionals[0],
            forwards=tuple(forwards),
            extra_args=tuple(extra),
        )

    def forward_args(self) -> list[str]:
        return [arg for forward in self.forwards for arg in forward.to_args()]


@dataclass(frozen=True)
class TunnelInfo:
    """A profile together with its probed runtime state."""

    profile: TunnelProfile
    running: bool
    control_path: Path

    @property
    def name(self) -> str:
        return self.profile.name
