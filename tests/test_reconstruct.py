"""Tests for markdown reconstruction used by rendered payloads."""

import pytest

from gleaner.reconstruct import quote, render_tokens, render_with_links
from gleaner.walker import default_parser


def roundtrip(text: str) -> str:
    return render_tokens(default_parser().parse(text))


class TestRenderTokens:
    @pytest.mark.parametrize("text", [
        "Some *em* and **strong** with `code`",
        '[x](a.md "T")',
        "![alt](p.png)",
        "1. one\n2. two",
        "- a\n\n- b",
        "- a\n  - b",
        "```py\nx = 1\n```",
        "> p1\n>\n> p2",
        "> - a\n> - b",
        "# Heading",
        "---",
    ])
    def test_canonical_markdown_unchanged(self, text):
        assert roundtrip(text + "\n") == text

    def test_table_alignment(self):
        text = "| a | b |\n|:--|--:|\n| 1 | 2 |\n"
        assert roundtrip(text) == "| a | b |\n| :--- | ---: |\n| 1 | 2 |"

    def test_indented_code_becomes_fence(self):
        assert roundtrip("    code\n") == "```\ncode\n```"

    def test_destination_with_space(self):
        assert roundtrip("![x](<my pic.png>)\n") == "![x](my%20pic.png)"

    def test_autolink(self):
        assert roundtrip("<https://example.com>\n") == "<https://example.com>"


class TestRenderedLinks:
    def links_for(self, text, quote_depth=0):
        rendered, links = render_with_links(default_parser().parse(text), quote_depth)
        return rendered, [(rendered[l.start:l.end], l.target) for l in links]

    def test_targets(self):
        rendered, links = self.links_for("see [a](x.md) and ![b](<y z.png>)\n")
        assert rendered == "see [a](x.md) and ![b](y%20z.png)"
        assert links == [("x.md", "x.md"), ("y%20z.png", "y%20z.png")]

    def test_angle_brackets_outside_range(self):
        rendered, links = self.links_for("[a](<x(1).md>)\n")
        assert rendered == "[a](<x(1).md>)"
        assert links == [("x(1).md", "x(1).md")]

    def test_html_attributes(self):
        _, links = self.links_for("<img src=\"a.png\"> and <a href='b.md'>b</a>\n")
        assert [target for _, target in links] == ["a.png", "b.md"]

    def test_html_block(self):
        _, links = self.links_for('<div><img src="c.png"></div>\n')
        assert links == [("c.png", "c.png")]

    def test_code_is_not_a_link(self):
        rendered, links = self.links_for("Use `[a](b.md)` here\n\n```\n[c](d.md)\n```\n")
        assert "`[a](b.md)`" in rendered
        assert links == []

    def test_escaped_brackets_are_not_a_link(self):
        rendered, links = self.links_for("\\[a\\](b.md)\n")
        assert rendered == "\\[a\\](b.md)"
        assert links == []

    def test_badge_image_inside_link(self):
        _, links = self.links_for("[![b](img/b.png)](docs/x.md)\n")
        assert sorted(target for _, target in links) == ["docs/x.md", "img/b.png"]

    def test_ranges_survive_quote_prefix(self):
        rendered, links = self.links_for("[a](x.md)\nnext [b](y.md)\n", quote_depth=2)
        assert rendered == "> > [a](x.md)\n> > next [b](y.md)"
        assert links == [("x.md", "x.md"), ("y.md", "y.md")]

    def test_none(self):
        assert self.links_for("plain text\n") == ("plain text", [])


class TestQuote:
    def test_blank_lines_get_bare_marker(self):
        assert quote("a\n\nb") == "> a\n>\n> b"

    def test_depth(self):
        assert quote("a", 2) == "> > a"
