"""
Tag extraction: turns one note into tagged content records.

Rules, applied in one pass over the structural events:

- A heading's trailing tags open a section. Sections with their own tags
  produce one record holding the whole section body (sub-sections
  included), tagged with every tag on the section stack.
- A paragraph with trailing tags is a record with exactly those tags.
  Paragraphs without tags are only reachable through their section.
- A paragraph made of nothing but tags is a carrier: it is not emitted and
  its tags go to the next sibling block (paragraph, code fence, list,
  block quote, table or HTML block).
- A code fence directly after a tagged paragraph is attached to that
  paragraph's record.
- List items carry their first paragraph's trailing tags plus whatever the
  list inherited from a carrier or a parent item.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from markdown_it import MarkdownIt
from markdown_it.token import Token

from .errors import SpanInvariantViolation
from .reconstruct import render_with_links
from .sections import SectionStack
from .types import (
    ContentRecord,
    Context,
    LinkRef,
    NoteSource,
    ParagraphContext,
    Rendered,
    SectionContext,
    SourceSpan,
    Span,
    is_tag_only,
    strip_trailing_tags,
    trailing_tags,
)
from .walker import Event, EventKind, StructuralWalker

logger = logging.getLogger(__name__)

_DOCUMENT, _LIST, _ITEM, _QUOTE = "document", "list", "item", "quote"


@dataclass
class _Draft:
    """A record under construction; the payload is chosen at the end."""
    tags: frozenset[str]
    start: int
    end: int
    context: Context
    safe: bool
    tokens: tuple[Token, ...]
    quote_depth: int = 0


@dataclass
class _Frame:
    kind: str
    inherited: frozenset[str] = frozenset()
    pending: Optional[frozenset[str]] = None
    attach_to: Optional[_Draft] = None
    muted: bool = False
    # list items only
    event: Optional[Event] = None
    own: frozenset[str] = frozenset()
    first_block: bool = True
    carrier: bool = False


@dataclass
class _WalkContext:
    """Mutable state for a single extraction. Never shared between notes."""
    sections: SectionStack = field(default_factory=SectionStack)
    frames: list[_Frame] = field(default_factory=lambda: [_Frame(_DOCUMENT)])
    drafts: list[_Draft] = field(default_factory=list)
    links: list[LinkRef] = field(default_factory=list)

    @property
    def top(self) -> _Frame:
        return self.frames[-1]

    def paragraph_context(self) -> ParagraphContext:
        current = self.sections.current()
        if current is None:
            return ParagraphContext()
        return ParagraphContext(heading=current.heading, level=current.level)


class TagExtractor:
    """
    Extracts content records from one note.

    Usage:
        records = TagExtractor("2025-01-15.md", data, date(2025, 1, 15)).extract()

    Raises UnicodeDecodeError if the note is not valid UTF-8.
    """

    def __init__(self, source_id: str, data: bytes, date=None, md: Optional[MarkdownIt] = None):
        self.source_id = source_id
        self.data = data
        self.date = date
        self.walker = StructuralWalker(data, md)

    def extract(self) -> list[ContentRecord]:
        events = self.walker.walk()
        ctx = _WalkContext()
        section_ends = self._section_ends(events)

        for index, event in enumerate(events):
            kind = event.kind
            if kind == EventKind.HEADING_START:
                self._heading(ctx, events, index, section_ends)
            elif kind == EventKind.PARAGRAPH_START:
                self._paragraph(ctx, event)
            elif kind == EventKind.CODE_FENCE_START:
                self._fence(ctx, event)
            elif kind == EventKind.LIST_START:
                self._list_start(ctx)
            elif kind == EventKind.LIST_END:
                ctx.frames.pop()
                ctx.top.attach_to = None
            elif kind == EventKind.LIST_ITEM_START:
                parent = ctx.top
                ctx.frames.append(_Frame(
                    _ITEM, inherited=parent.inherited, muted=parent.muted, event=event,
                ))
            elif kind == EventKind.LIST_ITEM_END:
                self._item_end(ctx)
            elif kind == EventKind.BLOCK_START:
                self._block_start(ctx, event)
            elif kind == EventKind.BLOCK_END and event.name == "blockquote":
                ctx.frames.pop()
                ctx.top.attach_to = None
            elif kind == EventKind.LINK_OR_IMAGE_REF:
                ctx.links.append(LinkRef(event.start, event.end, event.text))

        ctx.sections.clear()
        return self._finish(ctx)

    # -- event handlers -----------------------------------------------------

    def _section_ends(self, events: list[Event]) -> dict[int, int]:
        """Map each top-level heading's event index to its section's end offset."""
        headings = [
            (i, e.level, e.start) for i, e in enumerate(events)
            if e.kind == EventKind.HEADING_START and e.depth == 0
        ]
        ends = {}
        for pos, (i, level, _) in enumerate(headings):
            end = len(self.data)
            for _, other_level, other_start in headings[pos + 1:]:
                if other_level <= level:
                    end = other_start
                    break
            ends[i] = end
        return ends

    def _heading(self, ctx: _WalkContext, events: list[Event], index: int, section_ends: dict[int, int]) -> None:
        event = events[index]
        ctx.top.pending = None
        ctx.top.attach_to = None
        if ctx.top.kind != _DOCUMENT:
            return

        own = trailing_tags(event.text)
        title = strip_trailing_tags(event.text)
        ctx.sections.push_heading(event.level, title, own)
        if not own:
            return

        start, end = self.walker.body_range(event.end, section_ends[index])
        if start >= end:
            return
        tokens: list[Token] = []
        for inner in events[index + 1:]:
            if inner.start >= end:
                break
            if inner.depth == 0 and inner.kind.value.endswith("_start"):
                tokens.extend(inner.tokens)
        ctx.drafts.append(_Draft(
            ctx.sections.current_tags(), start, end,
            SectionContext(title, event.level), safe=True, tokens=tuple(tokens),
        ))

    def _paragraph(self, ctx: _WalkContext, event: Event) -> None:
        frame = ctx.top
        if frame.kind == _ITEM:
            if frame.first_block:
                frame.own = frozenset(trailing_tags(event.text))
                frame.carrier = is_tag_only(event.text)
            frame.first_block = False
            return

        own = frozenset(trailing_tags(event.text))
        if is_tag_only(event.text):
            frame.pending = (frame.pending or frozenset()) | own
            frame.attach_to = None
            return

        tags = own | (frame.pending or frozenset())
        frame.pending = None
        frame.attach_to = None
        if tags and not frame.muted:
            draft = _Draft(
                tags, event.start, event.end, ctx.paragraph_context(),
                event.safe, event.tokens, event.quote_depth,
            )
            ctx.drafts.append(draft)
            frame.attach_to = draft

    def _fence(self, ctx: _WalkContext, event: Event) -> None:
        frame = ctx.top
        if frame.kind == _ITEM:
            frame.first_block = False
            return
        if frame.attach_to is not None:
            draft = frame.attach_to
            draft.end = event.end
            draft.tokens = draft.tokens + event.tokens
            draft.safe = draft.safe and event.safe
        elif frame.pending and not frame.muted:
            ctx.drafts.append(_Draft(
                frame.pending, event.start, event.end, ctx.paragraph_context(),
                event.safe, event.tokens, event.quote_depth,
            ))
        frame.pending = None
        frame.attach_to = None

    def _list_start(self, ctx: _WalkContext) -> None:
        parent = ctx.top
        if parent.kind == _ITEM:
            inherited = parent.inherited | parent.own
            parent.first_block = False
        else:
            inherited = parent.pending or frozenset()
            parent.pending = None
        parent.attach_to = None
        ctx.frames.append(_Frame(_LIST, inherited=inherited, muted=parent.muted))

    def _item_end(self, ctx: _WalkContext) -> None:
        item = ctx.frames.pop()
        event = item.event
        tags = item.own | item.inherited
        has_content = len(event.tokens) > 2
        if tags and has_content and not item.carrier and not item.muted:
            ctx.drafts.append(_Draft(
                tags, event.start, event.end, ctx.paragraph_context(),
                event.safe, event.tokens, event.quote_depth,
            ))

    def _block_start(self, ctx: _WalkContext, event: Event) -> None:
        frame = ctx.top
        if frame.kind == _ITEM:
            frame.first_block = False
        elif frame.pending and event.name != "hr" and not frame.muted:
            ctx.drafts.append(_Draft(
                frame.pending, event.start, event.end, ctx.paragraph_context(),
                event.safe, event.tokens, event.quote_depth,
            ))
        frame.pending = None
        frame.attach_to = None
        if event.name == "blockquote":
            ctx.frames.append(_Frame(_QUOTE, muted=frame.muted or frame.kind == _ITEM))

    # -- payloads -----------------------------------------------------------

    def _finish(self, ctx: _WalkContext) -> list[ContentRecord]:
        drafts = sorted(ctx.drafts, key=lambda d: (d.start, -d.end))
        records = []
        for sequence, draft in enumerate(drafts):
            records.append(ContentRecord(
                tags=draft.tags,
                payload=self._payload(draft, ctx.links),
                source_id=self.source_id,
                context=draft.context,
                start=draft.start,
                end=draft.end,
                date=self.date,
                sequence=sequence,
            ))
        return records

    def _payload(self, draft: _Draft, links: list[LinkRef]):
        if draft.safe:
            span = SourceSpan(self.source_id, draft.start, draft.end)
            try:
                span.validate(self.data)
            except SpanInvariantViolation as e:
                logger.debug("Falling back to rendered payload: %s", e)
            else:
                inside = tuple(l for l in links if draft.start <= l.start and l.end <= draft.end)
                return Span(span, inside)
        text, rendered_links = render_with_links(draft.tokens, draft.quote_depth)
        return Rendered(text, rendered_links)


def extract_records(source: NoteSource, md: Optional[MarkdownIt] = None) -> list[ContentRecord]:
    """Content records for one loaded note, in source order."""
    return TagExtractor(source.source_id, source.data, source.date, md).extract()


def collect_tags(data: bytes, md: Optional[MarkdownIt] = None) -> set[str]:
    """Every tag declared by a heading, paragraph or list item in ``data``."""
    tags: set[str] = set()
    for event in StructuralWalker(data, md).walk():
        if event.kind in (EventKind.HEADING_START, EventKind.PARAGRAPH_START):
            tags.update(trailing_tags(event.text))
    return tags
