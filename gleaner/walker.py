"""
Structural walk over one markdown note.

Turns the markdown-it token stream into a flat list of structural events
(heading, paragraph, list, list item, code fence, other blocks and link
targets), each carrying the exact byte range it occupies in the original
source. Offsets are byte offsets so slicing the undecoded note reproduces
the construct verbatim, line endings included.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from markdown_it import MarkdownIt
from markdown_it.common.utils import unescapeAll
from markdown_it.token import Token

logger = logging.getLogger(__name__)


# markdown-it splits lines on the same terminators when it normalizes input
_LINE_END_RE = re.compile(rb"\r\n?|\n")

# Inline link/image destination following the closing bracket
_INLINE_DEST_RE = re.compile(
    r"(?<!\\)\]\([ \t]*(?:\r?\n[ \t]*)?(<[^<>\n]*>|(?:[^\s()<]|\([^\s()]*\))+)"
)

# src="..." / href='...' in raw HTML
_HTML_ATTR_RE = re.compile(
    r"""\b(?:src|href)\s*=\s*(?:"([^"]+)"|'([^']+)')""", re.IGNORECASE
)

# Opening backtick run of a code span
_BACKTICKS_RE = re.compile(r"(?<![\\`])`+")


class EventKind(Enum):
    HEADING_START = "heading_start"
    HEADING_END = "heading_end"
    PARAGRAPH_START = "paragraph_start"
    PARAGRAPH_END = "paragraph_end"
    LIST_START = "list_start"
    LIST_END = "list_end"
    LIST_ITEM_START = "list_item_start"
    LIST_ITEM_END = "list_item_end"
    CODE_FENCE_START = "code_fence_start"
    CODE_FENCE_END = "code_fence_end"
    BLOCK_START = "block_start"
    BLOCK_END = "block_end"
    LINK_OR_IMAGE_REF = "link_or_image_ref"


@dataclass(frozen=True)
class Event:
    """
    One structural event.

    Attributes:
        kind: event type
        start, end: byte range in the source; for link refs, the range of
            the target text itself
        level: heading level (1-6)
        depth: number of enclosing lists and block quotes
        quote_depth: number of enclosing block quotes
        text: inline source of a heading/paragraph, or the link target
        name: block name for BLOCK_START/BLOCK_END (blockquote, table, html, hr)
        safe: False when slicing [start, end) would not reproduce the
            construct alone (e.g. it sits behind block quote markers)
        tokens: markdown-it tokens of the construct, for the rendered fallback
    """
    kind: EventKind
    start: int
    end: int
    level: int = 0
    depth: int = 0
    quote_depth: int = 0
    text: str = ""
    name: str = ""
    safe: bool = True
    tokens: tuple[Token, ...] = ()


def default_parser() -> MarkdownIt:
    """CommonMark parser with GFM tables.

    Backslash escapes stay separate `text_special` tokens so reconstructed
    markdown can write them back.
    """
    return MarkdownIt("commonmark").enable("table").disable("text_join")


def line_offsets(data: bytes) -> list[int]:
    """Byte offset at which each line of ``data`` starts."""
    offsets = [0]
    offsets.extend(m.end() for m in _LINE_END_RE.finditer(data))
    return offsets


def _close_index(tokens: list[Token], i: int) -> int:
    """Index of the token closing the block opened at ``tokens[i]``."""
    level = tokens[i].level
    for j in range(i + 1, len(tokens)):
        if tokens[j].nesting == -1 and tokens[j].level == level:
            return j
    return len(tokens) - 1


class StructuralWalker:
    """
    Walks one source text into structural events.

    The walk is a single pass over the markdown-it block tokens with an
    explicit container stack (lists, list items, block quotes); there is no
    shared state between walkers.

    Raises UnicodeDecodeError if ``data`` is not valid UTF-8.
    """

    def __init__(self, data: bytes, md: Optional[MarkdownIt] = None):
        self.data = data
        self.text = data.decode("utf-8")
        self.md = md or default_parser()
        self._lines = line_offsets(data)

    # -- offsets ------------------------------------------------------------

    def _line_start(self, line: int) -> int:
        if line < len(self._lines):
            return self._lines[line]
        return len(self.data)

    def _trim_end(self, start: int, end: int) -> int:
        """Drop the final line terminator and any trailing blank lines."""
        data = self.data
        while end > start:
            if data[end - 1:end] in (b"\n", b"\r"):
                end -= 1
                continue
            line_start = data.rfind(b"\n", start, end) + 1
            line_start = max(line_start, data.rfind(b"\r", start, end) + 1, start)
            if data[line_start:end].strip(b" \t") == b"" and line_start > start:
                end = line_start
                continue
            break
        return end

    def span_for_lines(self, line_map: list[int]) -> tuple[int, int]:
        """Byte range covering markdown-it's [first_line, last_line) map."""
        start = self._line_start(line_map[0])
        end = self._trim_end(start, self._line_start(line_map[1]))
        return start, end

    def body_range(self, start: int, end: int) -> tuple[int, int]:
        """Trim leading blank lines and trailing whitespace lines of a range."""
        data = self.data
        while start < end:
            m = _LINE_END_RE.search(data, start, end)
            line_end = m.start() if m else end
            if data[start:line_end].strip(b" \t"):
                break
            start = m.end() if m else end
        return start, self._trim_end(start, end)

    def _skip_indent(self, start: int, end: int) -> int:
        """Move past the indentation of a nested list marker."""
        while start < end and self.data[start:start + 1] in (b" ", b"\t"):
            start += 1
        return start

    def _byte_offset(self, base: int, raw: str, index: int) -> int:
        return base + len(raw[:index].encode("utf-8"))

    # -- link targets -------------------------------------------------------

    def _link_refs(self, inlines: list[Token], start: int, end: int) -> list[Event]:
        """Locate the source bytes of every link/image target in inline runs."""
        children = [c for inline in inlines for c in _flatten(inline.children or [])]
        if not children:
            return []
        raw = self.data[start:end].decode("utf-8")
        visible = _mask_code_spans(raw)
        candidates = list(_INLINE_DEST_RE.finditer(visible))
        # a link wrapping an image opens before the image but its target comes after
        used: set[int] = set()
        refs: list[Event] = []
        html_cursor = 0
        for child in children:
            if child.type in ("link_open", "image"):
                if child.markup == "autolink":
                    continue
                href = child.attrGet("href") if child.type == "link_open" else child.attrGet("src")
                for index, m in enumerate(candidates):
                    if index in used:
                        continue
                    inner_start, inner_end = m.span(1)
                    dest = m.group(1)
                    if dest.startswith("<"):
                        inner_start, inner_end = inner_start + 1, inner_end - 1
                        dest = dest[1:-1]
                    if self.md.normalizeLink(unescapeAll(dest)) != href:
                        continue
                    used.add(index)
                    refs.append(Event(
                        EventKind.LINK_OR_IMAGE_REF,
                        self._byte_offset(start, raw, inner_start),
                        self._byte_offset(start, raw, inner_end),
                        text=dest,
                    ))
                    break
                else:
                    # reference-style links have no inline destination to rewrite
                    logger.debug("No inline destination for %r", href)
            elif child.type == "html_inline":
                found = visible.find(child.content, html_cursor)
                if found < 0:
                    continue
                html_cursor = found + len(child.content)
                refs.extend(self._html_refs(raw, start, found, html_cursor))
        refs.sort(key=lambda e: e.start)
        return refs

    def _html_refs(self, raw: str, base: int, lo: int, hi: int) -> list[Event]:
        refs = []
        for m in _HTML_ATTR_RE.finditer(raw, lo, hi):
            group = 1 if m.group(1) is not None else 2
            refs.append(Event(
                EventKind.LINK_OR_IMAGE_REF,
                self._byte_offset(base, raw, m.start(group)),
                self._byte_offset(base, raw, m.end(group)),
                text=m.group(group),
            ))
        return refs

    # -- walk ---------------------------------------------------------------

    def walk(self) -> list[Event]:
        """Parse the source and return its structural events in order."""
        tokens = self.md.parse(self.text)
        events: list[Event] = []
        # (closing token type, start event) for open containers
        containers: list[tuple[str, Event]] = []
        quote_depth = 0
        item_depth = 0

        i = 0
        while i < len(tokens):
            tok = tokens[i]
            depth = len(containers)
            safe = quote_depth == 0

            if tok.type == "heading_open":
                close = _close_index(tokens, i)
                start, end = self.span_for_lines(tok.map)
                inline = tokens[i + 1]
                events.append(Event(
                    EventKind.HEADING_START, start, end,
                    level=int(tok.tag[1]), depth=depth, quote_depth=quote_depth,
                    text=inline.content, safe=safe and item_depth == 0,
                    tokens=tuple(tokens[i:close + 1]),
                ))
                events.extend(self._link_refs([inline], start, end))
                events.append(Event(EventKind.HEADING_END, start, end, depth=depth))
                i = close + 1
                continue

            if tok.type == "paragraph_open":
                close = _close_index(tokens, i)
                start, end = self.span_for_lines(tok.map)
                inline = tokens[i + 1]
                events.append(Event(
                    EventKind.PARAGRAPH_START, start, end,
                    depth=depth, quote_depth=quote_depth, text=inline.content,
                    # inside a list item the first line carries the item marker
                    safe=safe and item_depth == 0,
                    tokens=tuple(tokens[i:close + 1]),
                ))
                events.extend(self._link_refs([inline], start, end))
                events.append(Event(EventKind.PARAGRAPH_END, start, end, depth=depth))
                i = close + 1
                continue

            if tok.type in ("fence", "code_block"):
                start, end = self.span_for_lines(tok.map)
                events.append(Event(
                    EventKind.CODE_FENCE_START, start, end,
                    depth=depth, quote_depth=quote_depth, text=tok.info,
                    safe=safe and item_depth == 0, tokens=(tok,),
                ))
                events.append(Event(EventKind.CODE_FENCE_END, start, end, depth=depth))
                i += 1
                continue

            if tok.type in ("bullet_list_open", "ordered_list_open", "list_item_open"):
                close = _close_index(tokens, i)
                start, end = self.span_for_lines(tok.map)
                start = self._skip_indent(start, end)
                is_item = tok.type == "list_item_open"
                kind = EventKind.LIST_ITEM_START if is_item else EventKind.LIST_START
                event = Event(
                    kind, start, end, depth=depth, quote_depth=quote_depth,
                    safe=safe, tokens=tuple(tokens[i:close + 1]),
                )
                events.append(event)
                containers.append((tokens[close].type, event))
                if is_item:
                    item_depth += 1
                i += 1
                continue

            if tok.type in ("bullet_list_close", "ordered_list_close", "list_item_close"):
                _, opened = containers.pop()
                if tok.type == "list_item_close":
                    item_depth -= 1
                    kind = EventKind.LIST_ITEM_END
                else:
                    kind = EventKind.LIST_END
                events.append(Event(kind, opened.start, opened.end, depth=len(containers)))
                i += 1
                continue

            if tok.type == "blockquote_open":
                close = _close_index(tokens, i)
                start, end = self.span_for_lines(tok.map)
                event = Event(
                    EventKind.BLOCK_START, start, end, depth=depth,
                    quote_depth=quote_depth, name="blockquote",
                    safe=safe and item_depth == 0,
                    tokens=tuple(tokens[i:close + 1]),
                )
                events.append(event)
                containers.append(("blockquote_close", event))
                quote_depth += 1
                i += 1
                continue

            if tok.type == "blockquote_close":
                _, opened = containers.pop()
                quote_depth -= 1
                events.append(Event(
                    EventKind.BLOCK_END, opened.start, opened.end,
                    depth=len(containers), name="blockquote",
                ))
                i += 1
                continue

            if tok.type == "table_open":
                close = _close_index(tokens, i)
                start, end = self.span_for_lines(tok.map)
                events.append(Event(
                    EventKind.BLOCK_START, start, end, depth=depth,
                    quote_depth=quote_depth, name="table",
                    safe=safe and item_depth == 0,
                    tokens=tuple(tokens[i:close + 1]),
                ))
                inlines = [t for t in tokens[i:close] if t.type == "inline"]
                events.extend(self._link_refs(inlines, start, end))
                events.append(Event(EventKind.BLOCK_END, start, end, depth=depth, name="table"))
                i = close + 1
                continue

            if tok.type in ("html_block", "hr"):
                name = "html" if tok.type == "html_block" else "hr"
                start, end = self.span_for_lines(tok.map)
                events.append(Event(
                    EventKind.BLOCK_START, start, end, depth=depth,
                    quote_depth=quote_depth, name=name,
                    safe=safe and item_depth == 0, tokens=(tok,),
                ))
                if name == "html":
                    raw = self.data[start:end].decode("utf-8")
                    events.extend(self._html_refs(raw, start, 0, len(raw)))
                events.append(Event(EventKind.BLOCK_END, start, end, depth=depth, name=name))
                i += 1
                continue

            logger.debug("Skipping token %s", tok.type)
            i += 1

        return events

    def code_ranges(self, events: Optional[list[Event]] = None) -> list[tuple[int, int]]:
        """Sorted, merged byte ranges of code blocks and inline code spans."""
        if events is None:
            events = self.walk()
        ranges = []
        for event in events:
            if event.kind == EventKind.CODE_FENCE_START:
                ranges.append((event.start, event.end))
            elif event.kind in (EventKind.HEADING_START, EventKind.PARAGRAPH_START) or (
                event.kind == EventKind.BLOCK_START and event.name == "table"
            ):
                raw = self.data[event.start:event.end].decode("utf-8")
                for lo, hi in _code_span_ranges(raw):
                    ranges.append((
                        self._byte_offset(event.start, raw, lo),
                        self._byte_offset(event.start, raw, hi),
                    ))
        return _merge_ranges(ranges)


def _code_span_ranges(raw: str) -> list[tuple[int, int]]:
    """Character ranges of the backtick code spans in one inline run."""
    ranges = []
    search_from = 0
    while True:
        opener = _BACKTICKS_RE.search(raw, search_from)
        if opener is None:
            return ranges
        run = re.escape(opener.group(0))
        closer = re.compile(f"(?<!`){run}(?!`)").search(raw, opener.end())
        if closer is None:
            # an unmatched run is literal text
            search_from = opener.end()
            continue
        ranges.append((opener.start(), closer.end()))
        search_from = closer.end()


def _mask_code_spans(raw: str) -> str:
    """``raw`` with code spans blanked out, character positions kept."""
    out: list[str] = []
    pos = 0
    for lo, hi in _code_span_ranges(raw):
        out.append(raw[pos:lo])
        out.append(re.sub(r"[^\r\n]", " ", raw[lo:hi]))
        pos = hi
    out.append(raw[pos:])
    return "".join(out)


def _merge_ranges(ranges: list[tuple[int, int]]) -> list[tuple[int, int]]:
    merged: list[tuple[int, int]] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _flatten(children: list[Token]):
    for child in children:
        yield child
        if child.type != "image" and child.children:
            yield from _flatten(child.children)


def walk(data: bytes, md: Optional[MarkdownIt] = None) -> list[Event]:
    """Convenience wrapper: structural events for ``data``."""
    return StructuralWalker(data, md).walk()
