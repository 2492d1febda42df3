"""Tests for section tag inheritance."""

import pytest

from gleaner.sections import SectionStack


class TestSectionStack:
    def test_empty(self):
        stack = SectionStack()
        assert stack.current_tags() == frozenset()
        assert stack.current() is None

    def test_nested_union(self):
        stack = SectionStack()
        stack.push_heading(1, "Project", ["main"])
        stack.push_heading(2, "Sprint", ["work", "sprint"])
        assert stack.current_tags() == {"main", "work", "sprint"}
        assert stack.current().heading == "Sprint"

    def test_sibling_replaces(self):
        stack = SectionStack()
        stack.push_heading(1, "Project", ["main"])
        stack.push_heading(2, "A", ["tag-a"])
        stack.push_heading(2, "B", ["tag-b"])
        assert stack.current_tags() == {"main", "tag-b"}

    def test_higher_level_pops_deeper(self):
        stack = SectionStack()
        stack.push_heading(2, "A", ["a"])
        stack.push_heading(3, "A.1", ["a1"])
        stack.push_heading(4, "A.1.1", ["a11"])
        stack.push_heading(2, "B", [])
        assert len(stack) == 1
        assert stack.current_tags() == frozenset()

    def test_descendant_superset(self):
        stack = SectionStack()
        stack.push_heading(1, "Top", ["x"])
        outer = stack.current_tags()
        stack.push_heading(3, "Deep", ["y"])
        assert stack.current_tags() >= outer

    def test_skipped_levels(self):
        stack = SectionStack()
        stack.push_heading(3, "Three", ["c"])
        stack.push_heading(1, "One", ["a"])
        assert [e.level for e in stack.entries()] == [1]

    def test_untagged_heading_keeps_parent_tags(self):
        stack = SectionStack()
        stack.push_heading(1, "Top", ["x"])
        stack.push_heading(2, "Plain", [])
        assert stack.current_tags() == {"x"}

    def test_clear(self):
        stack = SectionStack()
        stack.push_heading(1, "Top", ["x"])
        stack.clear()
        assert len(stack) == 0

    @pytest.mark.parametrize("level", [0, 7])
    def test_invalid_level(self, level):
        with pytest.raises(ValueError):
            SectionStack().push_heading(level, "bad", [])
