"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

Span = Tuple[int, int]  # (start, length) into the display text


@dataclass(frozen=True)
class Item(Generic[T]):
    """A catalog entry: recency key, matched/shown text, untouched payload."""

    identity: str
    display: str
    payload: T


@dataclass(frozen=True)
class MatchResult:
    index: int
    fuzzy_score: Optional[float]
    spans: Tuple[Span, ...] = ()

    @property
    def matched(self) -> bool:
        return self.fuzzy_score is not None


@dataclass(frozen=True)
class RankedEntry:
    index: int
    combined_score: float
    fuzzy_score: float
    recency_score: float
    spans: Tuple[Span, ...] = ()


@dataclass
class RankedView(Generic[T]):
    """One delivered ordering for a query revision."""

    revision: int
    query: str
    entries: List[RankedEntry] = field(default_factory=list)
    catalog: Sequence[Item[T]] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def items(self) -> List[Item[T]]:
        return [self.catalog[e.index] for e in self.entries]

    def rows(self) -> List[Tuple[str, Tuple[Span, ...]]]:
        return [(self.catalog[e.index].display, e.spans) for e in self.entries]

    def top(self) -> Optional[Item[T]]:
        if not self.entries:
            return None
        return self.catalog[self.entries[0].index]
