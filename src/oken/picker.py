"""Interactive host picker as a pure state machine.

The picker never touches the terminal: a driver feeds it key events and
renders ``groups``/``visible``/``selected`` after each one. This keeps every
transition testable without a tty.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .hosts.models import HostEntry
from .logging import get_logger
from .matcher import RankedHost, rank

logger = get_logger(__name__)


class PickerState(str, Enum):
    """Picker lifecycle states."""

    TYPING = "typing"
    NAVIGATING = "navigating"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({PickerState.CONFIRMED, PickerState.CANCELLED})


@dataclass(frozen=True)
class Char:
    """A printable character typed into the query."""

    char: str


@dataclass(frozen=True)
class Backspace:
    pass


@dataclass(frozen=True)
class Up:
    pass


@dataclass(frozen=True)
class Down:
    pass


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


PickerEvent = Char | Backspace | Up | Down | Confirm | Cancel


@dataclass
class HostGroup:
    """Hosts sharing the same leading tag (``tag`` is None for untagged hosts)."""

    tag: str | None
    hosts: list[RankedHost] = field(default_factory=list)


def _group_key(entry: HostEntry) -> str | None:
    if not entry.tags:
        return None
    return sorted(entry.tags, key=str.lower)[0]


def group_by_tag(ranked: list[RankedHost]) -> list[HostGroup]:
    """Group a ranked list by each host's first tag in sorted order.

    Groups keep the order of their best-ranked member; untagged hosts form a
    trailing group. Rank order is preserved inside each group.
    """
    groups: dict[str, HostGroup] = {}
    untagged = HostGroup(tag=None)
    for item in ranked:
        key = _group_key(item.entry)
        if key is None:
            untagged.hosts.append(item)
            continue
        group = groups.get(key.lower())
        if group is None:
            group = groups[key.lower()] = HostGroup(tag=key)
        group.hosts.append(item)

    result = list(groups.values())
    if untagged.hosts:
        result.append(untagged)
    return result


class Picker:
    """Host selection driven by discrete events.

    Attributes:
        state: Current lifecycle state
        query: Current query text
        selected: Index into ``visible``
        result: Chosen host once CONFIRMED
    """

    def __init__(
        self,
        hosts: Iterable[HostEntry],
        recency: Mapping[str, datetime] | None = None,
        query: str = "",
    ) -> None:
        self.hosts = list(hosts)
        self.recency = dict(recency or {})
        self.state = PickerState.TYPING
        self.query = query
        self.selected = 0
        self.result: HostEntry | None = None
        self.groups: list[HostGroup] = []
        self.visible: list[RankedHost] = []
        self._refresh()

    def _refresh(self) -> None:
        self.groups = group_by_tag(rank(self.hosts, self.query, self.recency))
        self.visible = [item for group in self.groups for item in group.hosts]
        self.selected = 0

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def current(self) -> RankedHost | None:
        """The highlighted host, if any."""
        if not self.visible:
            return None
        return self.visible[self.selected]

    def handle(self, event: PickerEvent) -> PickerState:
        """Apply one event and return the resulting state.

        Terminal states ignore further events.
        """
        if self.done:
            return self.state

        if isinstance(event, Char):
            self.query += event.char
            self._refresh()
            self.state = PickerState.TYPING
        elif isinstance(event, Backspace):
            self.query = self.query[:-1]
            self._refresh()
            self.state = PickerState.TYPING
        elif isinstance(event, Up):
            self.selected = max(self.selected - 1, 0)
            self.state = PickerState.NAVIGATING
        elif isinstance(event, Down):
            self.selected = min(self.selected + 1, max(len(self.visible) - 1, 0))
            self.state = PickerState.NAVIGATING
        elif isinstance(event, Confirm):
            current = self.current
            if current is not None:
                self.result = current.entry
                self.state = PickerState.CONFIRMED
                logger.debug("Picker confirmed", alias=current.alias)
        elif isinstance(event, Cancel):
            self.result = None
            self.state = PickerState.CANCELLED
            logger.debug("Picker cancelled")
        return self.state
