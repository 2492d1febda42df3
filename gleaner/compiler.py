"""
Compilation: filter, de-duplicate, order and render content records into
one markdown document.
"""

import calendar
import re
from datetime import date, timedelta
from itertools import groupby
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

from .links import splice_links, splice_links_bytes
from .query import TagQuery
from .types import (
    CompilationDateStyle,
    CompilationFormat,
    ContentRecord,
    NoteSource,
    Rendered,
    Span,
)

# Source bytes between two records that were written on consecutive lines
_ADJACENT_GAP_RE = re.compile(rb"(?:\r\n|\r|\n)[ \t]*")


def filter_records(records: Iterable[ContentRecord], query: TagQuery) -> list[ContentRecord]:
    return [r for r in records if query.matches(r.tags)]


def deduplicate(records: Iterable[ContentRecord]) -> list[ContentRecord]:
    """
    Drop records that lie inside another kept record of the same note.

    A matched section and a matched paragraph inside it would otherwise
    print the paragraph twice. Input order is preserved.
    """
    records = list(records)
    dropped: set[int] = set()
    by_source: dict[str, list[int]] = {}
    for index, record in enumerate(records):
        by_source.setdefault(record.source_id, []).append(index)

    for indexes in by_source.values():
        indexes.sort(key=lambda i: (records[i].start, -records[i].end, records[i].sequence))
        reach = -1
        for i in indexes:
            if records[i].end <= reach:
                dropped.add(i)
            else:
                reach = records[i].end
    return [r for i, r in enumerate(records) if i not in dropped]


def _date_key(record_date: Optional[date]):
    return (record_date is None, record_date or date.min)


def sort_chronological(records: Iterable[ContentRecord]) -> list[ContentRecord]:
    """Oldest first, undated last; source order within a note."""
    return sorted(records, key=lambda r: (*_date_key(r.date), *r.order_key))


def group_by_date(records: Iterable[ContentRecord]) -> list[tuple[Optional[date], list[ContentRecord]]]:
    ordered = sort_chronological(records)
    return [(key, list(group)) for key, group in groupby(ordered, key=lambda r: r.date)]


def group_by_file(records: Iterable[ContentRecord]) -> list[tuple[str, list[ContentRecord]]]:
    """Records grouped per note; notes ordered by date, then name."""
    ordered = sort_chronological(records)
    return [(key, list(group)) for key, group in groupby(ordered, key=lambda r: r.source_id)]


def format_date_header(day: date, style: CompilationDateStyle) -> str:
    if style is CompilationDateStyle.WEEK_RANGE:
        return f"{day.isoformat()} to {(day + timedelta(days=6)).isoformat()}"
    if style is CompilationDateStyle.MONTH_RANGE:
        last = calendar.monthrange(day.year, day.month)[1]
        return f"{day.isoformat()} to {day.replace(day=last).isoformat()}"
    return day.isoformat()


def render_record(record: ContentRecord, source: NoteSource, output_path: Optional[Path]) -> str:
    """Text of one record with its relative links re-pointed at ``output_path``."""
    payload = record.payload
    if isinstance(payload, Span):
        data = payload.span.slice(source.data)
        if output_path is not None and payload.links:
            data = splice_links_bytes(data, payload.links, source.path, output_path, base=payload.span.start)
        return data.decode("utf-8")
    if isinstance(payload, Rendered):
        text = payload.text
        if output_path is not None and payload.links:
            text = splice_links(text, payload.links, source.path, output_path)
        return text
    raise TypeError(f"Unknown payload type: {type(payload).__name__}")


def _source_adjacent(previous: ContentRecord, record: ContentRecord, source: NoteSource) -> bool:
    if previous.source_id != record.source_id or previous.end > record.start:
        return False
    return _ADJACENT_GAP_RE.fullmatch(source.data, previous.end, record.start) is not None


def _render_group(
    records: Sequence[ContentRecord],
    sources: Mapping[str, NoteSource],
    include_context: bool,
    output_path: Optional[Path],
) -> str:
    out: list[str] = []
    previous: Optional[ContentRecord] = None
    previous_context = None
    for record in records:
        source = sources[record.source_id]
        context = (record.heading, record.heading_level) if record.heading else None
        new_context = include_context and context is not None and context != previous_context
        if previous is not None:
            tight = not new_context and _source_adjacent(previous, record, source)
            out.append("\n" if tight else "\n\n")
        if new_context:
            heading, level = context
            out.append("#" * min(level + 2, 6) + " " + heading + "\n\n")
        previous_context = context if include_context else None
        out.append(render_record(record, source, output_path))
        previous = record
    return "".join(out)


def to_markdown(
    records: Iterable[ContentRecord],
    sources: Mapping[str, NoteSource],
    query: TagQuery,
    format: CompilationFormat = CompilationFormat.CHRONOLOGICAL,
    date_style: CompilationDateStyle = CompilationDateStyle.SINGLE_DATE,
    include_context: bool = False,
    output_path: Optional[Path] = None,
) -> str:
    """
    The compiled document.

    Records should already be filtered and de-duplicated. Groups are
    separated by a blank line; records that sat on consecutive lines in
    the note are joined by a single newline so tight lists stay tight.
    """
    blocks = [f"# Compilation: {query}"]
    if format is CompilationFormat.GROUPED:
        for source_id, group in group_by_file(records):
            header = f"From: {source_id}"
            group_date = group[0].date
            if date_style is not CompilationDateStyle.SINGLE_DATE and group_date is not None:
                header += f" ({format_date_header(group_date, date_style)})"
            blocks.append(f"## {header}")
            blocks.append(_render_group(group, sources, include_context, output_path))
    else:
        for group_date, group in group_by_date(records):
            header = "Undated" if group_date is None else format_date_header(group_date, date_style)
            blocks.append(f"## {header}")
            blocks.append(_render_group(group, sources, include_context, output_path))
    return "\n\n".join(blocks) + "\n"
