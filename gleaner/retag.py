"""
Tag renaming across the notes of a journal.

Occurrences inside code blocks and inline code spans are left alone, as
are URL fragments and HTML entities that merely look like tags.
"""

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from markdown_it import MarkdownIt

from .errors import InvalidTagError, SourceReadError
from .repository import JournalRepository
from .types import normalize_tag
from .walker import StructuralWalker

logger = logging.getLogger(__name__)

# A tag in running text: not glued to a preceding word, path, entity or '#'
_TAG_RE = re.compile(rb"(?<![\w&/#])#([A-Za-z0-9_-]+)")


@dataclass
class RetagResult:
    content: bytes
    replacements: int


@dataclass
class RetagOptions:
    from_tag: str
    to_tag: str
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    recursive: Optional[bool] = None
    dry_run: bool = False


@dataclass
class RetagFileChange:
    source_id: str
    replacements: int


@dataclass
class RetagReport:
    from_tag: str
    to_tag: str
    scanned_files: int = 0
    total_replacements: int = 0
    dry_run: bool = False
    changes: list[RetagFileChange] = field(default_factory=list)

    @property
    def changed_files(self) -> int:
        return len(self.changes)


def tag_argument(value: str) -> str:
    """Normalize a tag given on the command line. Raises InvalidTagError."""
    try:
        return normalize_tag(value.strip())
    except ValueError:
        raise InvalidTagError(value) from None


def _inside(ranges: list[tuple[int, int]], starts: list[int], offset: int) -> bool:
    index = bisect_right(starts, offset) - 1
    return index >= 0 and offset < ranges[index][1]


def retag_text(data: bytes, from_tag: str, to_tag: str, md: Optional[MarkdownIt] = None) -> RetagResult:
    """
    Replace ``#from_tag`` with ``#to_tag`` in one note.

    Matching is case-insensitive and whole-tag only (``#work`` does not touch
    ``#workshop``). Everything other than the replaced tags is kept
    byte for byte. Raises UnicodeDecodeError for notes that are not UTF-8.
    """
    from_tag = tag_argument(from_tag)
    to_tag = tag_argument(to_tag)
    if not data or from_tag == to_tag:
        return RetagResult(data, 0)

    excluded = StructuralWalker(data, md).code_ranges()
    starts = [start for start, _ in excluded]
    wanted = from_tag.encode("ascii")
    replacement = b"#" + to_tag.encode("ascii")

    pieces: list[bytes] = []
    pos = 0
    count = 0
    for m in _TAG_RE.finditer(data):
        if m.group(1).lower() != wanted or _inside(excluded, starts, m.start()):
            continue
        pieces.append(data[pos:m.start()])
        pieces.append(replacement)
        pos = m.end()
        count += 1
    if not count:
        return RetagResult(data, 0)
    pieces.append(data[pos:])
    return RetagResult(b"".join(pieces), count)


def retag_notes(
    repository: JournalRepository,
    options: RetagOptions,
    md: Optional[MarkdownIt] = None,
) -> RetagReport:
    """
    Rename a tag in every selected note, writing each changed note
    atomically. With ``dry_run`` nothing is written.

    Raises:
        InvalidTagError: either tag argument is malformed
        SourceReadError: a note cannot be read or is not UTF-8
        OutputWriteError: a changed note cannot be written back
    """
    from_tag = tag_argument(options.from_tag)
    to_tag = tag_argument(options.to_tag)
    report = RetagReport(from_tag, to_tag, dry_run=options.dry_run)

    entries = repository.list_notes(options.date_from, options.date_to, recursive=options.recursive)
    report.scanned_files = len(entries)
    for entry in entries:
        data = repository.read_source(entry.path)
        try:
            result = retag_text(data, from_tag, to_tag, md)
        except UnicodeDecodeError as e:
            raise SourceReadError(entry.path, f"not valid UTF-8 ({e.reason} at byte {e.start})") from e
        if not result.replacements:
            continue
        if not options.dry_run:
            repository.write_output_atomic(entry.path, result.content)
            logger.info("Retagged #%s -> #%s in %s (%d)", from_tag, to_tag, entry.source_id, result.replacements)
        report.total_replacements += result.replacements
        report.changes.append(RetagFileChange(entry.source_id, result.replacements))
    return report
