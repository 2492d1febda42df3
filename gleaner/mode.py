"""
Journal modes: how note filenames map to dates.
"""

import re
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from .types import CompilationDateStyle

_DAILY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_WEEKLY_RE = re.compile(r"^(\d{4})-W(\d{2})(?:-(\d{4}-\d{2}-\d{2}))?$")
_MONTHLY_RE = re.compile(r"^(\d{4})-(\d{2})$")


class JournalMode(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SINGLE = "single"

    @classmethod
    def parse(cls, value: str) -> "JournalMode":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Invalid mode: {value!r} (valid: {valid})") from None

    def filename_for_date(self, day: date) -> str:
        if self is JournalMode.DAILY:
            return f"{day:%Y-%m-%d}.md"
        if self is JournalMode.WEEKLY:
            year, week, _ = day.isocalendar()
            monday = day - timedelta(days=day.weekday())
            return f"{year}-W{week:02d}-{monday:%Y-%m-%d}.md"
        if self is JournalMode.MONTHLY:
            return f"{day:%Y-%m}.md"
        return "journal.md"

    def matches_filename(self, filename: str) -> bool:
        if self is JournalMode.SINGLE:
            return filename == "journal.md"
        return self.date_from_filename(filename) is not None

    def date_from_filename(self, filename: str) -> Optional[date]:
        """Date a note file stands for, or None if the name doesn't fit this mode.

        Weekly notes map to the Monday of their ISO week; monthly notes to
        the first of the month. Single-file journals are undated.
        """
        if not filename.endswith(".md"):
            return None
        stem = filename[:-3]
        try:
            if self is JournalMode.DAILY:
                if not _DAILY_RE.match(stem):
                    return None
                return datetime.strptime(stem, "%Y-%m-%d").date()
            if self is JournalMode.WEEKLY:
                m = _WEEKLY_RE.match(stem)
                if not m:
                    return None
                monday = date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)
                if m.group(3) is not None:
                    embedded = datetime.strptime(m.group(3), "%Y-%m-%d").date()
                    if embedded != monday:
                        return None
                return monday
            if self is JournalMode.MONTHLY:
                m = _MONTHLY_RE.match(stem)
                if not m:
                    return None
                return date(int(m.group(1)), int(m.group(2)), 1)
        except ValueError:
            return None
        return None

    @property
    def date_style(self) -> CompilationDateStyle:
        if self is JournalMode.WEEKLY:
            return CompilationDateStyle.WEEK_RANGE
        if self is JournalMode.MONTHLY:
            return CompilationDateStyle.MONTH_RANGE
        return CompilationDateStyle.SINGLE_DATE
