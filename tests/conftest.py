"""
Shared pytest fixtures for gleaner tests.

Journals are created under tmp_path; GLEANER_ROOT points at them so error
logs never land in the real home directory.
"""

from datetime import date
from pathlib import Path

import pytest

from gleaner.extractor import TagExtractor
from gleaner.mode import JournalMode
from gleaner.repository import JournalRepository


def extract(text, source_id="2025-01-15.md", day=date(2025, 1, 15)):
    """Records for a note given as str (encoded UTF-8) or bytes."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    return TagExtractor(source_id, data, day).extract()


def record_text(record, text):
    """Source text covered by a record's span payload."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    span = record.payload.span
    return data[span.start:span.end].decode("utf-8")


@pytest.fixture
def journal_root(tmp_path, monkeypatch) -> Path:
    """An initialized daily journal."""
    root = tmp_path / "journal"
    JournalRepository.initialize(root, JournalMode.DAILY)
    monkeypatch.setenv("GLEANER_ROOT", str(root))
    return root.resolve()


@pytest.fixture
def repo(journal_root) -> JournalRepository:
    return JournalRepository.open(journal_root)


@pytest.fixture
def write_note(journal_root):
    """Write a note into the journal: write_note("2025-01-15.md", text)."""
    def _write(name: str, content, root: Path = None) -> Path:
        path = (root or journal_root) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        return path
    return _write
