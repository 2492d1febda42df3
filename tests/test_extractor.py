"""Tests for tag extraction: sections, paragraphs, carriers, lists and payloads."""

from datetime import date

import pytest

from gleaner.errors import SpanInvariantViolation
from gleaner.extractor import collect_tags, extract_records
from gleaner.types import NoteSource, ParagraphContext, Rendered, SectionContext, Span

from conftest import extract, record_text


class TestSections:
    NOTE = (
        "# 2025-01-15\n"
        "\n"
        "## Sprint Planning #work #sprint\n"
        "\n"
        "Discussed goals.\n"
        "\n"
        "### Backend\n"
        "\n"
        "API work.\n"
        "\n"
        "## Lunch\n"
        "\n"
        "Sandwich.\n"
    )

    def test_section_body_includes_subsections(self):
        records = extract(self.NOTE)
        assert len(records) == 1
        record = records[0]
        assert record.tags == {"work", "sprint"}
        assert record.context == SectionContext("Sprint Planning", 2)
        assert record_text(record, self.NOTE) == "Discussed goals.\n\n### Backend\n\nAPI work."

    def test_nested_sections_inherit(self):
        note = (
            "# Project #main\n\n"
            "## A #tag-a\n\nText a\n\n"
            "## B #tag-b\n\nText b\n"
        )
        records = extract(note)
        by_heading = {r.heading: r for r in records}
        assert by_heading["Project"].tags == {"main"}
        assert by_heading["A"].tags == {"main", "tag-a"}
        assert by_heading["B"].tags == {"main", "tag-b"}
        assert by_heading["A"].tags >= by_heading["Project"].tags

    def test_section_ends_at_same_level(self):
        note = "## A #a\n\nalpha\n\n## B\n\nbeta\n"
        (record,) = extract(note)
        assert record_text(record, note) == "alpha"

    def test_empty_section_not_emitted(self):
        assert extract("## Empty #work\n## Next\n\ntext\n") == []

    def test_tag_only_heading(self):
        (record,) = extract("### #codex\n\nBody\n")
        assert record.context == SectionContext("", 3)
        assert record.tags == {"codex"}

    def test_untagged_paragraph_belongs_to_section(self):
        records = extract("## Notes #work\n\nplain paragraph\n")
        assert len(records) == 1
        assert records[0].context == SectionContext("Notes", 2)

    def test_crlf_span(self):
        note = "## S #t\r\n\r\nline1\r\nline2\r\n"
        (record,) = extract(note)
        assert record_text(record, note) == "line1\r\nline2"


class TestParagraphs:
    def test_trailing_tags(self):
        note = "Buy milk. #errand\n"
        (record,) = extract(note)
        assert record.tags == {"errand"}
        assert record.context == ParagraphContext()
        assert record_text(record, note) == "Buy milk. #errand"

    def test_own_tags_do_not_inherit(self):
        note = "## Meeting #work\n\nNotes here #personal\n"
        records = extract(note)
        paragraph = [r for r in records if isinstance(r.context, ParagraphContext)][0]
        assert paragraph.tags == {"personal"}
        assert paragraph.context == ParagraphContext("Meeting", 2)

    def test_mid_text_tag_is_not_trailing(self):
        assert extract("#work is mentioned here\n") == []

    def test_multibyte(self):
        note = "Café ☕ #drink\n"
        (record,) = extract(note)
        assert record_text(record, note) == "Café ☕ #drink"

    def test_tags_lowercased(self):
        (record,) = extract("Mixed #Work #URGENT\n")
        assert record.tags == {"work", "urgent"}


class TestCarriers:
    def test_carrier_tags_next_paragraph(self):
        note = "#todo\n\nWrite report.\n"
        (record,) = extract(note)
        assert record.tags == {"todo"}
        assert record_text(record, note) == "Write report."

    def test_carrier_unions_with_own_tags(self):
        (record,) = extract("#a\n\nText #b\n")
        assert record.tags == {"a", "b"}

    def test_carrier_tags_list_items(self):
        note = "#shopping\n- milk\n- eggs\n"
        records = extract(note)
        assert [record_text(r, note) for r in records] == ["- milk", "- eggs"]
        assert all(r.tags == {"shopping"} for r in records)

    def test_carrier_tags_fence(self):
        note = "#snippet\n\n```\nx\n```\n"
        (record,) = extract(note)
        assert record_text(record, note) == "```\nx\n```"

    def test_carrier_tags_block_quote(self):
        note = "#quote\n\n> Wise words.\n> More.\n"
        (record,) = extract(note)
        assert record.tags == {"quote"}
        assert record_text(record, note) == "> Wise words.\n> More."

    def test_carrier_tags_table(self):
        note = "#data\n\n| a | b |\n|---|---|\n| 1 | 2 |\n"
        (record,) = extract(note)
        assert record_text(record, note) == "| a | b |\n|---|---|\n| 1 | 2 |"

    def test_rule_drops_carrier(self):
        assert extract("#x\n\n---\n\nText.\n") == []

    def test_heading_drops_carrier(self):
        assert extract("#x\n\n## H\n\nText.\n") == []


class TestLists:
    def test_item_own_tags(self):
        note = "- call mom #family\n- groceries\n"
        (record,) = extract(note)
        assert record.tags == {"family"}
        assert record_text(record, note) == "- call mom #family"

    def test_carrier_item(self):
        note = "- #project\n  - step one\n  - step two #urgent\n"
        records = extract(note)
        assert [record_text(r, note) for r in records] == ["- step one", "- step two #urgent"]
        assert records[0].tags == {"project"}
        assert records[1].tags == {"project", "urgent"}

    def test_parent_item_tags_children(self):
        note = "- Project #work\n  - task a\n"
        records = extract(note)
        assert [record_text(r, note) for r in records] == ["- Project #work\n  - task a", "- task a"]
        assert records[1].tags == {"work"}

    def test_quote_inside_item_not_emitted(self):
        assert extract("- item\n\n  > inner #q\n") == []


class TestFences:
    def test_fence_attaches_to_tagged_paragraph(self):
        note = "Example #code\n\n```py\nprint(1)\n```\n"
        (record,) = extract(note)
        assert record_text(record, note) == "Example #code\n\n```py\nprint(1)\n```"

    def test_fence_after_untagged_paragraph(self):
        assert extract("Plain.\n\n```\nx\n```\n") == []


class TestPayloads:
    def test_span_links(self):
        (record,) = extract("See [x](img/a.png) #pics\n")
        assert isinstance(record.payload, Span)
        assert [l.target for l in record.payload.links] == ["img/a.png"]

    def test_quote_paragraph_rendered(self):
        (record,) = extract("> ![p](img/p.png) #pics\n")
        assert isinstance(record.payload, Rendered)
        assert record.payload.text == "> ![p](img/p.png) #pics"
        link = record.payload.links[0]
        assert record.payload.text[link.start:link.end] == "img/p.png"

    def test_quote_markers_kept_on_every_line(self):
        (record,) = extract("> Quoted thought\n> second line #idea\n")
        assert record.payload == Rendered("> Quoted thought\n> second line #idea")

    def test_nested_quote_markers(self):
        (record,) = extract("> > deep #idea\n")
        assert record.payload.text == "> > deep #idea"

    def test_list_item_in_quote(self):
        (record,) = extract("> - task #todo\n> - other\n")
        assert record.payload.text == "> - task #todo"

    def test_quote_code_span_is_not_a_link(self):
        (record,) = extract("> Use `[a](./b.md)` syntax #work\n")
        assert record.payload.text == "> Use `[a](./b.md)` syntax #work"
        assert record.payload.links == ()

    def test_span_violation_falls_back(self, monkeypatch):
        def refuse(self, data):
            raise SpanInvariantViolation("forced")
        monkeypatch.setattr("gleaner.extractor.SourceSpan.validate", refuse)
        (record,) = extract("Buy milk. #errand\n")
        assert record.payload == Rendered("Buy milk. #errand")

    def test_source_order_and_sequence(self):
        note = "First #a\n\nSecond #b\n\nThird #c\n"
        records = extract(note)
        assert [r.sequence for r in records] == [0, 1, 2]
        assert [r.start for r in records] == sorted(r.start for r in records)

    def test_record_metadata(self):
        source = NoteSource("notes/2025-01-15.md", None, b"x #t\n", date(2025, 1, 15))
        (record,) = extract_records(source)
        assert record.source_id == "notes/2025-01-15.md"
        assert record.date == date(2025, 1, 15)

    def test_invalid_utf8(self):
        with pytest.raises(UnicodeDecodeError):
            extract(b"bad \xff #t\n")


class TestCollectTags:
    def test_vocabulary(self):
        data = b"# H #a\n\npara #b\n\n- item #c\n\n```\n#notatag\n```\n\nmid #text here\n"
        assert collect_tags(data) == {"a", "b", "c"}

    def test_empty(self):
        assert collect_tags(b"") == set()
