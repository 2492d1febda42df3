"""
Section tag inheritance.

A heading's trailing tags apply to everything below it until the next
heading of the same or a higher level.
"""

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class SectionEntry:
    level: int
    heading: str
    tags: frozenset[str]


class SectionStack:
    """
    Stack of open sections for one walk.

    Pushing a heading of level L first pops every entry with level >= L,
    so the stack always holds strictly increasing levels.
    """

    def __init__(self):
        self._entries: list[SectionEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def push_heading(self, level: int, heading: str, tags: Iterable[str]) -> SectionEntry:
        if not 1 <= level <= 6:
            raise ValueError(f"Heading level out of range: {level}")
        self.pop_to(level)
        entry = SectionEntry(level, heading, frozenset(tags))
        self._entries.append(entry)
        return entry

    def pop_to(self, level: int) -> None:
        """Close every section at ``level`` or deeper."""
        while self._entries and self._entries[-1].level >= level:
            self._entries.pop()

    def current_tags(self) -> frozenset[str]:
        """Union of tags across all open sections."""
        tags: set[str] = set()
        for entry in self._entries:
            tags |= entry.tags
        return frozenset(tags)

    def current(self) -> Optional[SectionEntry]:
        return self._entries[-1] if self._entries else None

    def entries(self) -> list[SectionEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
