"""
Core API for compiling tagged journal content.

- compile(): list notes → extract records → filter → dedupe → render → write
- list_tags(): tag vocabulary of the journal
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Union

from markdown_it import MarkdownIt

from .compiler import deduplicate, filter_records, to_markdown
from .errors import InvalidDateError, NoMatchesError, SourceReadError, log_exception
from .extractor import collect_tags, extract_records
from .query import parse_query
from .repository import JournalRepository, NoteEntry
from .types import CompilationFormat, CompilationRequest, ContentRecord, NoteSource
from .walker import default_parser

logger = logging.getLogger(__name__)


def parse_date_param(value: str) -> date:
    """
    Parse a date argument.

    Accepts:
    - ISO date: 2025-01-15
    - Day first: 15-01-2025

    Raises InvalidDateError for anything else.
    """
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise InvalidDateError(value)


def sanitize_filename(query: str) -> str:
    """
    Output file stem for a query.

    >>> sanitize_filename("work AND urgent")
    'work-and-urgent'
    """
    out = []
    for ch in query:
        if ch.isascii() and (ch.isalnum() or ch in "_-"):
            out.append(ch.lower())
        elif ch == " ":
            out.append("-")
        else:
            out.append("_")
    stem = "".join(out).strip("_")
    return stem or "compilation"


@dataclass
class CompileOptions:
    query: str
    output: Optional[Path] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    format: CompilationFormat = CompilationFormat.CHRONOLOGICAL
    include_context: bool = False
    recursive: Optional[bool] = None


@dataclass
class CompileResult:
    output_path: Path
    record_count: int
    warnings: list[str] = field(default_factory=list)


class CompileService:
    """
    Runs compilations against one journal.

    Notes are processed one after another; each note's extraction is
    independent, and all records are gathered before filtering.
    """

    def __init__(self, repository: JournalRepository, md: Optional[MarkdownIt] = None):
        self.repository = repository
        self.md = md or default_parser()

    def request_for(self, options: CompileOptions) -> CompilationRequest:
        if options.output is not None:
            output_path = self.repository.resolve_output(options.output)
        else:
            output_path = (
                self.repository.config.compilations_path
                / f"{sanitize_filename(options.query)}.md"
            )
        return CompilationRequest(
            query=options.query,
            output_path=output_path,
            date_from=options.date_from,
            date_to=options.date_to,
            format=options.format,
            include_context=options.include_context,
        )

    def load_sources(self, entries: list[NoteEntry], warnings: list[str]) -> dict[str, NoteSource]:
        sources: dict[str, NoteSource] = {}
        for entry in entries:
            try:
                data = self.repository.read_source(entry.path)
                data.decode("utf-8")
            except SourceReadError as e:
                logger.warning("%s", e)
                warnings.append(str(e))
                continue
            except UnicodeDecodeError as e:
                err = SourceReadError(entry.path, f"not valid UTF-8 ({e.reason} at byte {e.start})")
                logger.warning("%s", err)
                warnings.append(str(err))
                continue
            sources[entry.source_id] = NoteSource(entry.source_id, entry.path, data, entry.date)
        return sources

    def extract(self, sources: dict[str, NoteSource], warnings: list[str]) -> list[ContentRecord]:
        records: list[ContentRecord] = []
        for source in sources.values():
            try:
                records.extend(extract_records(source, self.md))
            except Exception as e:
                # one malformed note must not sink the whole compilation
                log_exception(e, f"extract {source.source_id}")
                message = f"Cannot parse {source.path}: {e}"
                logger.warning("%s", message)
                warnings.append(message)
        return records

    def compile(self, options: CompileOptions) -> CompileResult:
        """
        Compile matching content into one document and write it.

        Raises:
            QuerySyntaxError: malformed query; nothing is written
            NoMatchesError: no notes, or no records matched
            OutputWriteError: the document could not be written
        """
        query = parse_query(options.query)
        request = self.request_for(options)
        warnings: list[str] = []

        entries = self.repository.list_notes(
            request.date_from, request.date_to, recursive=options.recursive,
        )
        if not entries:
            raise NoMatchesError(options.query, "No notes found for compilation")

        sources = self.load_sources(entries, warnings)
        matched = filter_records(self.extract(sources, warnings), query)
        if not matched:
            raise NoMatchesError(options.query)

        records = deduplicate(matched)
        document = to_markdown(
            records,
            sources,
            query,
            format=request.format,
            date_style=self.repository.mode.date_style,
            include_context=request.include_context,
            output_path=request.output_path,
        )
        path = self.repository.write_output_atomic(request.output_path, document.encode("utf-8"))
        logger.info("Compiled %d records for %s into %s", len(records), query, path)
        return CompileResult(path, len(records), warnings)

    def list_tags(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        recursive: Optional[bool] = None,
    ) -> list[str]:
        """Sorted tag vocabulary of the selected notes."""
        warnings: list[str] = []
        entries = self.repository.list_notes(date_from, date_to, recursive=recursive)
        tags: set[str] = set()
        for source in self.load_sources(entries, warnings).values():
            tags |= collect_tags(source.data, self.md)
        return sorted(tags)


def compile_journal(root: Union[str, Path], query: str, **kwargs) -> CompileResult:
    """Convenience wrapper: compile ``query`` in the journal at ``root``."""
    return CompileService(JournalRepository.open(root)).compile(CompileOptions(query, **kwargs))
