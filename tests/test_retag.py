"""Tests for renaming tags inside notes."""

from datetime import date

import pytest

from gleaner.errors import InvalidTagError, SourceReadError
from gleaner.retag import RetagOptions, retag_notes, retag_text, tag_argument


def retag(text, from_tag="work", to_tag="focus"):
    result = retag_text(text.encode("utf-8"), from_tag, to_tag)
    return result.content.decode("utf-8"), result.replacements


class TestRetagText:
    def test_whole_tag_case_insensitive(self):
        text, count = retag("A #work and #WORK, not #workshop.")
        assert text == "A #focus and #focus, not #workshop."
        assert count == 2

    def test_duplicates(self):
        text, count = retag("#work #work #Work")
        assert text == "#focus #focus #focus"
        assert count == 3

    def test_fenced_code_skipped(self):
        note = "Outside #work\n\n```\n// #work\n```\n"
        text, count = retag(note)
        assert text == "Outside #focus\n\n```\n// #work\n```\n"
        assert count == 1

    def test_indented_code_skipped(self):
        text, count = retag("Text #work\n\n    code #work\n")
        assert text == "Text #focus\n\n    code #work\n"
        assert count == 1

    def test_inline_code_skipped(self):
        text, count = retag("Use `#work` here, but change #work.")
        assert text == "Use `#work` here, but change #focus."
        assert count == 1

    def test_inline_code_in_heading_and_list(self):
        note = "## Notes `#work` #work\n\n- item `#work` #work\n"
        text, count = retag(note)
        assert text == "## Notes `#work` #focus\n\n- item `#work` #focus\n"
        assert count == 2

    def test_fragments_and_entities_untouched(self):
        note = "See [x](page.md#work) and &#work; but #work\n"
        text, count = retag(note)
        assert text == "See [x](page.md#work) and &#work; but #focus\n"
        assert count == 1

    def test_same_tag_is_noop(self):
        data = b"#work stays\n"
        result = retag_text(data, "#Work", "work")
        assert result.content is data
        assert result.replacements == 0

    def test_no_match_keeps_bytes(self):
        data = b"Nothing here #play\r\n"
        assert retag_text(data, "work", "focus").content == data

    def test_other_bytes_preserved(self):
        note = "# 2025-01-15\r\n\r\nCafé #work\r\n"
        text, _ = retag(note)
        assert text == "# 2025-01-15\r\n\r\nCafé #focus\r\n"

    def test_invalid_utf8(self):
        with pytest.raises(UnicodeDecodeError):
            retag_text(b"\xff #work", "work", "focus")


class TestTagArgument:
    def test_normalizes(self):
        assert tag_argument("#Work") == "work"
        assert tag_argument(" deep_work-2 ") == "deep_work-2"

    @pytest.mark.parametrize("value", ["work@email", "#", "##work", ""])
    def test_rejects(self, value):
        with pytest.raises(InvalidTagError):
            tag_argument(value)


class TestRetagNotes:
    def test_writes_changed_notes(self, repo, write_note):
        write_note("2025-01-15.md", "One #work, two #work\n")
        write_note("2025-01-16.md", "Nothing #play\n")
        report = retag_notes(repo, RetagOptions("work", "project"))
        assert (repo.root / "2025-01-15.md").read_text() == "One #project, two #project\n"
        assert (repo.root / "2025-01-16.md").read_text() == "Nothing #play\n"
        assert report.scanned_files == 2
        assert report.changed_files == 1
        assert report.total_replacements == 2
        assert [(c.source_id, c.replacements) for c in report.changes] == [("2025-01-15.md", 2)]

    def test_dry_run_does_not_write(self, repo, write_note):
        write_note("2025-01-15.md", "Task #work")
        report = retag_notes(repo, RetagOptions("work", "focus", dry_run=True))
        assert (repo.root / "2025-01-15.md").read_text() == "Task #work"
        assert report.dry_run
        assert report.total_replacements == 1

    def test_date_range(self, repo, write_note):
        write_note("2025-01-10.md", "Old #work")
        write_note("2025-02-10.md", "New #work")
        retag_notes(repo, RetagOptions("work", "focus", date_from=date(2025, 2, 1)))
        assert (repo.root / "2025-01-10.md").read_text() == "Old #work"
        assert (repo.root / "2025-02-10.md").read_text() == "New #focus"

    def test_recursive_skips_dot_dirs(self, repo, write_note):
        write_note("2025-01-15.md", "Root #work")
        write_note("projects/2025-01-16.md", "Nested #work")
        write_note(".hidden/2025-01-17.md", "Hidden #work")
        retag_notes(repo, RetagOptions("work", "focus", recursive=True))
        assert (repo.root / "2025-01-15.md").read_text() == "Root #focus"
        assert (repo.root / "projects" / "2025-01-16.md").read_text() == "Nested #focus"
        assert (repo.root / ".hidden" / "2025-01-17.md").read_text() == "Hidden #work"

    def test_invalid_utf8_note(self, repo, write_note):
        write_note("2025-01-15.md", b"\xfe #work\n")
        with pytest.raises(SourceReadError, match="not valid UTF-8"):
            retag_notes(repo, RetagOptions("work", "focus"))

    def test_invalid_tag(self, repo):
        with pytest.raises(InvalidTagError):
            retag_notes(repo, RetagOptions("work", "bad tag"))
