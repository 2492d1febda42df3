"""
Data types for tag extraction and compilation.
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .errors import SpanInvariantViolation


# Tags are '#' followed by ASCII letters, digits, '_' or '-'.
# Stored lowercase, without the '#'.
TAG_TOKEN_RE = re.compile(r'#([A-Za-z0-9_-]+)')
_TAG_NAME_RE = re.compile(r'^[A-Za-z0-9_-]+$')


def normalize_tag(tag: str) -> str:
    """Lowercase a tag and drop a leading '#'.

    Raises ValueError for names outside the tag alphabet.
    """
    name = tag[1:] if tag.startswith("#") else tag
    if not _TAG_NAME_RE.match(name):
        raise ValueError(f"Invalid tag name: {tag!r}")
    return name.lower()


def _is_tag_token(token: str) -> bool:
    return TAG_TOKEN_RE.fullmatch(token) is not None


def trailing_tags(text: str) -> list[str]:
    """Tags in the run of tag tokens that ends the text, in source order.

    >>> trailing_tags("Buy milk. #errand #Home")
    ['errand', 'home']
    >>> trailing_tags("#work is mentioned here")
    []
    """
    tokens = text.split()
    run: list[str] = []
    for token in reversed(tokens):
        if not _is_tag_token(token):
            break
        run.append(token[1:].lower())
    run.reverse()
    return _unique(run)


def is_tag_only(text: str) -> bool:
    """True when the text consists of one or more tag tokens and nothing else."""
    tokens = text.split()
    return bool(tokens) and all(_is_tag_token(t) for t in tokens)


def strip_trailing_tags(text: str) -> str:
    """Text with its trailing tag run removed (used for heading titles)."""
    tokens = text.split()
    while tokens and _is_tag_token(tokens[-1]):
        tokens.pop()
    return " ".join(tokens)


def _unique(tags) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        if tag not in seen:
            seen.append(tag)
    return seen


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceSpan:
    """Byte range [start, end) into one source text."""
    source_id: str
    start: int
    end: int

    def validate(self, data: bytes) -> None:
        """Check the span lies inside ``data`` on code point boundaries.

        Raises SpanInvariantViolation otherwise.
        """
        if not 0 <= self.start <= self.end <= len(data):
            raise SpanInvariantViolation(
                f"span [{self.start}, {self.end}) outside source of {len(data)} bytes"
            )
        for offset in (self.start, self.end):
            # UTF-8 continuation bytes look like 0b10xxxxxx
            if offset < len(data) and (data[offset] & 0xC0) == 0x80:
                raise SpanInvariantViolation(
                    f"span boundary {offset} splits a code point in {self.source_id}"
                )

    def slice(self, data: bytes) -> bytes:
        self.validate(data)
        return data[self.start:self.end]


@dataclass(frozen=True)
class LinkRef:
    """Location of a link/image target.

    Offsets are source bytes for span payloads and characters of the
    rendered text for rendered payloads.
    """
    start: int
    end: int
    target: str


@dataclass(frozen=True)
class Span:
    """Payload copied byte-for-byte from the source."""
    span: SourceSpan
    links: tuple[LinkRef, ...] = ()


@dataclass(frozen=True)
class Rendered:
    """Payload reconstructed from the markdown structure."""
    text: str
    links: tuple[LinkRef, ...] = ()


Payload = Union[Span, Rendered]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SectionContext:
    """Content owned by a heading's section."""
    heading: str
    level: int


@dataclass(frozen=True)
class ParagraphContext:
    """A standalone block (paragraph, list item, fence, ...).

    heading/level name the enclosing section, if any, for --include-context.
    """
    heading: Optional[str] = None
    level: int = 0


Context = Union[SectionContext, ParagraphContext]


@dataclass(frozen=True)
class ContentRecord:
    """
    A tagged fragment of one note.

    Attributes:
        tags: lowercase tag names (no '#'); inherited tags already resolved
        payload: Span (exact bytes) or Rendered (reconstructed text)
        source_id: note path relative to the journal root, '/'-separated
        context: section or paragraph classification
        start, end: source byte range of the construct, used for ordering,
            de-duplication and adjacency even when the payload is Rendered
        date: date associated with the note, if any
        sequence: position of the record within its note
    """
    tags: frozenset[str]
    payload: Payload
    source_id: str
    context: Context
    start: int
    end: int
    date: Optional[date] = None
    sequence: int = 0

    @property
    def order_key(self) -> tuple[str, int, int]:
        return (self.source_id, self.start, self.sequence)

    @property
    def heading(self) -> Optional[str]:
        """Originating heading text, if the record sits under a heading."""
        return self.context.heading

    @property
    def heading_level(self) -> int:
        return self.context.level

    def contains(self, other: "ContentRecord") -> bool:
        """True if ``other`` lies entirely inside this record's range."""
        return (
            self.source_id == other.source_id
            and self.start <= other.start
            and other.end <= self.end
        )


@dataclass
class NoteSource:
    """One note loaded for a compilation."""
    source_id: str
    path: Path
    data: bytes
    date: Optional[date] = None


# ---------------------------------------------------------------------------
# Compilation requests
# ---------------------------------------------------------------------------


class CompilationFormat(Enum):
    """Ordering of the compiled document."""
    CHRONOLOGICAL = "chronological"
    GROUPED = "grouped"

    @classmethod
    def parse(cls, value: str) -> "CompilationFormat":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(f.value for f in cls)
            raise ValueError(f"Invalid format: {value!r} (valid: {valid})") from None


class CompilationDateStyle(Enum):
    """How date group headers are written."""
    SINGLE_DATE = "single"
    WEEK_RANGE = "week"
    MONTH_RANGE = "month"


@dataclass(frozen=True)
class CompilationRequest:
    query: str
    output_path: Path
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    format: CompilationFormat = CompilationFormat.CHRONOLOGICAL
    include_context: bool = False
