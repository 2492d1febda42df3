"""
Error types and error logging for gleaner.

Per-file problems (unreadable notes, unsafe spans) are recovered from
locally; query, output and no-match errors abort a compilation before
anything is written. The CLI logs full stack traces for debugging while
showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class GleanerError(Exception):
    """Base class for all gleaner errors."""

    exit_code = 1

    def display_with_suggestions(self) -> str:
        """Message shown to CLI users, with hints where we have any."""
        return str(self)


class NotJournalDirectory(GleanerError):
    """No `.gleaner/` directory was found for the requested journal."""

    exit_code = 2

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(f"Not a gleaner journal: {self.path}")

    def display_with_suggestions(self) -> str:
        return (
            f"Not a gleaner journal: {self.path}\n\n"
            "Suggestions:\n"
            "  - Run 'gleaner init' in this directory to create a new journal\n"
            "  - Navigate to an existing journal directory\n"
            "  - Set GLEANER_ROOT to your journal path"
        )


class InvalidDateError(GleanerError):
    """A date argument could not be parsed."""

    exit_code = 3

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid date: {value!r}")

    def display_with_suggestions(self) -> str:
        return (
            f"Invalid date: {self.value!r}\n\n"
            "Expected YYYY-MM-DD or DD-MM-YYYY\n"
            "Example: gleaner compile work --from 2025-01-01 --to 31-01-2025"
        )


class ConfigError(GleanerError):
    """Journal configuration is missing a value or cannot be parsed."""


class QuerySyntaxError(GleanerError):
    """A boolean tag query could not be parsed.

    Attributes:
        position: character offset in the query string where parsing failed
    """

    def __init__(self, message: str, query: str, position: int):
        self.message = message
        self.query = query
        self.position = position
        super().__init__(f"{message} at position {position}")

    def display_with_suggestions(self) -> str:
        pointer = " " * self.position + "^"
        return (
            f"Invalid query: {self.message} (position {self.position})\n"
            f"  {self.query}\n"
            f"  {pointer}\n\n"
            "Queries combine tags with AND, OR, NOT and parentheses,\n"
            "e.g. 'work NOT meeting' or '(work AND sprint) OR personal'"
        )


class InvalidTagError(GleanerError):
    """A tag argument is empty or uses characters outside the tag alphabet."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid tag: {value!r}")

    def display_with_suggestions(self) -> str:
        return (
            f"Invalid tag: {self.value!r}\n\n"
            "Tags use letters, numbers, '-' and '_', with or without a leading #"
        )


class SourceReadError(GleanerError):
    """A note file could not be read or decoded as UTF-8."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot read {self.path}: {reason}")


class SpanInvariantViolation(GleanerError):
    """A computed span would split a code point or exceed the source length.

    Internal only: the extractor catches it and falls back to a rendered
    payload for the affected record.
    """


class OutputWriteError(GleanerError):
    """The compiled document could not be written."""

    def __init__(self, path: Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot write {self.path}: {reason}")


class NoMatchesError(GleanerError):
    """The query selected no content, so nothing was compiled."""

    exit_code = 4

    def __init__(self, query: str, detail: str = "No content found matching query"):
        self.query = query
        super().__init__(f"{detail}: {query}")

    def display_with_suggestions(self) -> str:
        return (
            f"No content found matching query: {self.query!r}\n\n"
            "Suggestions:\n"
            "  - Check your tag spelling (tags are case-insensitive)\n"
            "  - Use 'gleaner tags' to see the tags in your notes\n"
            "  - Tags must start with # in your notes (e.g., #work)\n"
            "  - Try a broader query (e.g., 'work OR personal')"
        )


def _error_log_path() -> Path:
    """Resolve error log path, respecting GLEANER_ROOT."""
    root = os.environ.get("GLEANER_ROOT")
    if root:
        return Path(root) / ".gleaner" / "gleaner-errors.log"
    return Path.home() / ".gleaner" / "gleaner-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
