"""Tests for journal modes and filename dates."""

from datetime import date

import pytest

from gleaner.mode import JournalMode
from gleaner.types import CompilationDateStyle


class TestParse:
    def test_case_insensitive(self):
        assert JournalMode.parse(" Weekly ") is JournalMode.WEEKLY

    def test_invalid(self):
        with pytest.raises(ValueError, match="valid: daily, weekly, monthly, single"):
            JournalMode.parse("hourly")


class TestDaily:
    def test_date(self):
        assert JournalMode.DAILY.date_from_filename("2025-01-15.md") == date(2025, 1, 15)

    @pytest.mark.parametrize("name", ["2025-01-15.txt", "2025-1-15.md", "2025-02-30.md", "notes.md"])
    def test_rejected(self, name):
        assert JournalMode.DAILY.date_from_filename(name) is None
        assert not JournalMode.DAILY.matches_filename(name)

    def test_filename(self):
        assert JournalMode.DAILY.filename_for_date(date(2025, 1, 5)) == "2025-01-05.md"


class TestWeekly:
    def test_week_maps_to_monday(self):
        assert JournalMode.WEEKLY.date_from_filename("2025-W03.md") == date(2025, 1, 13)

    def test_embedded_monday(self):
        assert JournalMode.WEEKLY.date_from_filename("2025-W03-2025-01-13.md") == date(2025, 1, 13)

    def test_embedded_date_must_be_monday(self):
        assert JournalMode.WEEKLY.date_from_filename("2025-W03-2025-01-14.md") is None

    def test_week_out_of_range(self):
        assert JournalMode.WEEKLY.date_from_filename("2025-W54.md") is None

    def test_filename(self):
        assert JournalMode.WEEKLY.filename_for_date(date(2025, 1, 16)) == "2025-W03-2025-01-13.md"

    def test_filename_round_trips(self):
        name = JournalMode.WEEKLY.filename_for_date(date(2024, 12, 31))
        assert JournalMode.WEEKLY.date_from_filename(name) == date(2024, 12, 30)


class TestMonthlyAndSingle:
    def test_month(self):
        assert JournalMode.MONTHLY.date_from_filename("2025-02.md") == date(2025, 2, 1)
        assert JournalMode.MONTHLY.date_from_filename("2025-13.md") is None

    def test_month_does_not_match_daily_names(self):
        assert not JournalMode.MONTHLY.matches_filename("2025-02-01.md")

    def test_single(self):
        assert JournalMode.SINGLE.matches_filename("journal.md")
        assert not JournalMode.SINGLE.matches_filename("2025-01-15.md")
        assert JournalMode.SINGLE.date_from_filename("journal.md") is None


class TestDateStyle:
    @pytest.mark.parametrize("mode, style", [
        (JournalMode.DAILY, CompilationDateStyle.SINGLE_DATE),
        (JournalMode.WEEKLY, CompilationDateStyle.WEEK_RANGE),
        (JournalMode.MONTHLY, CompilationDateStyle.MONTH_RANGE),
        (JournalMode.SINGLE, CompilationDateStyle.SINGLE_DATE),
    ])
    def test_style(self, mode, style):
        assert mode.date_style is style
