"""Fuzzy matching and ranking of hosts against a picker query."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from .hosts.models import HostEntry

TAG_PREFIX = "#"

SCORE_MATCH = 16
BONUS_BOUNDARY = 8
BONUS_CONSECUTIVE = 12
BONUS_ALIAS = 4
PENALTY_GAP = 2
PENALTY_LEADING = 1
MAX_LEADING_PENALTY = 12
SEPARATORS = frozenset("-_.@/ :")


@dataclass(frozen=True)
class Query:
    """A parsed picker query: fuzzy text, or a tag filter when ``tag`` is set."""

    text: str = ""
    tag: str | None = None

    @property
    def is_tag(self) -> bool:
        return self.tag is not None


@dataclass(frozen=True)
class RankedHost:
    """A host that survived filtering, with the keys it was ordered by."""

    entry: HostEntry
    score: int
    last_used: datetime | None = None

    @property
    def alias(self) -> str:
        return self.entry.alias


def parse_query(text: str) -> Query:
    """Split picker input into fuzzy text or a ``#tag`` filter.

    A bare ``#`` selects everything.
    """
    stripped = text.strip()
    if stripped.startswith(TAG_PREFIX):
        tag = stripped[len(TAG_PREFIX) :].strip()
        return Query(text="", tag=tag or None)
    return Query(text=stripped)


def _score_field(query: str, field: str) -> int | None:
    """Score a lowercase subsequence match of ``query`` in ``field``."""
    if not field:
        return None

    total = 0
    previous = -1
    position = 0
    for char in query:
        index = field.find(char, position)
        if index < 0:
            return None

        total += SCORE_MATCH
        if index == 0 or field[index - 1] in SEPARATORS:
            total += BONUS_BOUNDARY
        if previous >= 0:
            if index == previous + 1:
                total += BONUS_CONSECUTIVE
            else:
                total -= PENALTY_GAP * (index - previous - 1)
        else:
            total -= min(index * PENALTY_LEADING, MAX_LEADING_PENALTY)

        previous = index
        position = index + 1
    return total


def score(query: str, candidate: HostEntry) -> int | None:
    """Score ``candidate`` against fuzzy ``query``.

    The query must appear as a case-insensitive subsequence of the alias, the
    hostname, the user or one of the tags; the best field wins and the alias
    gets a small bonus.

    Returns:
        Score (higher is better), 0 for an empty query, None for no match
    """
    needle = query.strip().lower()
    if not needle:
        return 0

    fields = [(candidate.alias, BONUS_ALIAS), (candidate.hostname, 0)]
    if candidate.user:
        fields.append((candidate.user, 0))
    fields.extend((tag, 0) for tag in candidate.tags)

    best: int | None = None
    for field, bonus in fields:
        field_score = _score_field(needle, field.lower())
        if field_score is None:
            continue
        field_score += bonus
        if best is None or field_score > best:
            best = field_score
    return best


def _sort_key(ranked: RankedHost) -> tuple[bool, float, int, str]:
    last_used = ranked.last_used.timestamp() if ranked.last_used else 0.0
    return (ranked.last_used is None, -last_used, -ranked.score, ranked.alias)


def rank(
    candidates: Iterable[HostEntry],
    query: Query | str,
    recency: Mapping[str, datetime],
    tag: str | None = None,
) -> list[RankedHost]:
    """Filter and order hosts for display.

    Order: hosts with history first (most recent first), then by score, then
    by alias. In tag mode only members of the tag are kept and fuzzy scoring
    is skipped.

    Args:
        candidates: Hosts to consider
        query: Raw picker text or a parsed query
        recency: Latest successful connection per alias
        tag: Additional tag filter applied before fuzzy matching

    Returns:
        Ranked hosts, best first
    """
    if isinstance(query, str):
        query = parse_query(query)
    active_tags = [t for t in (tag, query.tag) if t]

    ranked: list[RankedHost] = []
    for entry in candidates:
        if not all(entry.has_tag(t) for t in active_tags):
            continue
        entry_score = 0 if query.is_tag else score(query.text, entry)
        if entry_score is None:
            continue
        ranked.append(RankedHost(entry, entry_score, recency.get(entry.alias)))

    ranked.sort(key=_sort_key)
    return ranked
