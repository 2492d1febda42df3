"""
gleaner: compile tagged fragments of dated markdown notes.

Quick start:
    from gleaner import CompileService, CompileOptions, JournalRepository

    repo = JournalRepository.discover()
    result = CompileService(repo).compile(CompileOptions("work NOT meeting"))
"""

__version__ = "0.1.0"

from .api import CompileOptions, CompileResult, CompileService, compile_journal
from .errors import GleanerError
from .extractor import TagExtractor, collect_tags, extract_records
from .query import parse_query
from .repository import JournalRepository
from .retag import RetagOptions, RetagReport, retag_notes

__all__ = [
    "CompileOptions",
    "CompileResult",
    "CompileService",
    "GleanerError",
    "JournalRepository",
    "RetagOptions",
    "RetagReport",
    "TagExtractor",
    "collect_tags",
    "compile_journal",
    "extract_records",
    "parse_query",
    "retag_notes",
]
