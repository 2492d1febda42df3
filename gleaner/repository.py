"""
File system access for a journal: listing notes, reading them and writing
compiled output.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional, Union

from .config import (
    CONFIG_DIRNAME,
    CONFIG_FILENAME,
    JournalConfig,
    find_journal_root,
    load_config,
    load_or_create_config,
)
from .errors import GleanerError, OutputWriteError, SourceReadError
from .mode import JournalMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoteEntry:
    """A note file found in the journal."""
    path: Path
    source_id: str
    date: Optional[date] = None


class JournalRepository:
    """
    A journal directory and its configuration.

    Use ``discover()`` to find the journal containing the current directory
    (or named by GLEANER_ROOT) and ``initialize()`` to create a new one.
    """

    def __init__(self, config: JournalConfig):
        self.config = config
        self.root = Path(config.root)

    @classmethod
    def open(cls, root: Union[str, Path]) -> "JournalRepository":
        return cls(load_config(Path(root).resolve()))

    @classmethod
    def discover(cls, start: Optional[Path] = None) -> "JournalRepository":
        return cls(load_config(find_journal_root(start)))

    @classmethod
    def initialize(cls, root: Union[str, Path], mode: JournalMode = JournalMode.DAILY) -> "JournalRepository":
        """Create `.gleaner/config.toml` under ``root``.

        Raises GleanerError if the directory is already a journal.
        """
        root = Path(root).resolve()
        if (root / CONFIG_DIRNAME / CONFIG_FILENAME).exists():
            raise GleanerError(f"Journal already initialized: {root}")
        root.mkdir(parents=True, exist_ok=True)
        config = load_or_create_config(root, mode)
        logger.info("Initialized %s journal at %s", mode.value, root)
        return cls(config)

    @property
    def mode(self) -> JournalMode:
        return self.config.mode

    def source_id(self, path: Path) -> str:
        return Path(path).relative_to(self.root).as_posix()

    # -- listNoteFiles ------------------------------------------------------

    def _candidate_files(self, recursive: bool) -> list[Path]:
        if not recursive:
            return [p for p in self.root.iterdir() if p.is_file()]
        found = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            # skip .gleaner, .compilations, .git and the like
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            found.extend(Path(dirpath) / name for name in filenames)
        return found

    def list_notes(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
        recursive: Optional[bool] = None,
    ) -> list[NoteEntry]:
        """
        Note files of this journal's mode, oldest first.

        The date range is inclusive; undated notes are left out when either
        bound is given. ``limit`` keeps the most recent N notes.
        """
        if recursive is None:
            recursive = self.config.recursive
        entries = []
        for path in self._candidate_files(recursive):
            if not self.mode.matches_filename(path.name):
                continue
            note_date = self.mode.date_from_filename(path.name)
            if date_from is not None or date_to is not None:
                if note_date is None:
                    continue
                if date_from is not None and note_date < date_from:
                    continue
                if date_to is not None and note_date > date_to:
                    continue
            entries.append(NoteEntry(path, self.source_id(path), note_date))

        entries.sort(key=lambda e: (e.date is None, e.date or date.min, e.source_id))
        if limit is not None and limit >= 0:
            entries = entries[-limit:] if limit else []
        return entries

    # -- readSourceText -----------------------------------------------------

    def read_source(self, path: Union[str, Path]) -> bytes:
        """Raw bytes of a note. Raises SourceReadError."""
        path = Path(path)
        if not path.is_absolute():
            path = self.root / path
        try:
            return path.read_bytes()
        except OSError as e:
            raise SourceReadError(path, e.strerror or str(e)) from e

    # -- writeOutputAtomic --------------------------------------------------

    def resolve_output(self, path: Union[str, Path]) -> Path:
        path = Path(path).expanduser()
        if not path.is_absolute():
            path = self.root / path
        return path

    def write_output_atomic(self, path: Union[str, Path], data: bytes) -> Path:
        """
        Write ``data`` to ``path`` through a temporary file and a rename, so
        readers never see a partial file. Raises OutputWriteError.
        """
        path = self.resolve_output(path)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise OutputWriteError(path, e.strerror or str(e)) from e
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return path
