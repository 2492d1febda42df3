"""
Markdown reconstruction from markdown-it tokens.

Used for records whose source bytes cannot be copied verbatim (content
behind block quote markers, for example). The output is equivalent
markdown, not the original text: emphasis markers and fence characters
are kept, but spacing, list indentation and link encoding are normalized.

Link and image destinations are wrapped in private-use marker characters
while rendering, so their final positions survive indentation and quote
prefixes; the markers are stripped once the text is complete.
"""

import re
from typing import Sequence

from markdown_it.token import Token

from .types import LinkRef

_MARK_OPEN = "\ue000"
_MARK_CLOSE = "\ue001"
_MARKED_RE = re.compile(f"{_MARK_OPEN}(.*?){_MARK_CLOSE}", re.DOTALL)

_HTML_ATTR_RE = re.compile(
    r"""\b(?:src|href)\s*=\s*(?:"([^"]+)"|'([^']+)')""", re.IGNORECASE
)


def _mark(target: str) -> str:
    return f"{_MARK_OPEN}{target}{_MARK_CLOSE}"


def _mark_html(html: str) -> str:
    """Mark the src/href attribute values of a raw HTML fragment."""
    def repl(m):
        group = 1 if m.group(1) is not None else 2
        lo, hi = m.start(group) - m.start(), m.end(group) - m.start()
        whole = m.group(0)
        return whole[:lo] + _mark(m.group(group)) + whole[hi:]
    return _HTML_ATTR_RE.sub(repl, html)


def render_inline(children: Sequence[Token]) -> str:
    out: list[str] = []
    links: list[Token] = []
    for tok in children:
        t = tok.type
        if t == "text":
            out.append(tok.content)
        elif t == "text_special":
            out.append(tok.markup or tok.content)
        elif t == "softbreak":
            out.append("\n")
        elif t == "hardbreak":
            out.append("\\\n")
        elif t == "code_inline":
            pad = " " if tok.content.startswith("`") or tok.content.endswith("`") else ""
            out.append(f"{tok.markup}{pad}{tok.content}{pad}{tok.markup}")
        elif t in ("em_open", "em_close", "strong_open", "strong_close", "s_open", "s_close"):
            out.append(tok.markup)
        elif t == "link_open":
            links.append(tok)
            out.append("<" if tok.markup == "autolink" else "[")
        elif t == "link_close":
            opened = links.pop() if links else None
            if opened is None:
                continue
            if opened.markup == "autolink":
                out.append(">")
            else:
                out.append(f"]({_destination(opened.attrGet('href'), opened.attrGet('title'))})")
        elif t == "image":
            alt = render_inline(tok.children or [])
            out.append(f"![{alt}]({_destination(tok.attrGet('src'), tok.attrGet('title'))})")
        elif t == "html_inline":
            out.append(_mark_html(tok.content))
        else:
            out.append(tok.content)
    return "".join(out)


def _destination(href, title) -> str:
    href = href or ""
    if not href:
        target = "<>"
    elif any(c in href for c in " ()"):
        target = f"<{_mark(href)}>"
    else:
        target = _mark(href)
    if title:
        escaped = title.replace('"', '\\"')
        return f'{target} "{escaped}"'
    return target

def _close(tokens: Sequence[Token], i: int) -> int:
    level = tokens[i].level
    for j in range(i + 1, len(tokens)):
        if tokens[j].nesting == -1 and tokens[j].level == level:
            return j
    return len(tokens) - 1


def _indent(text: str, width: int) -> str:
    pad = " " * width
    return "\n".join((pad + line) if line else line for line in text.split("\n"))


def _blocks(tokens: Sequence[Token]) -> list[str]:
    """Render a run of sibling block tokens, one string per block."""
    blocks: list[str] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        t = tok.type
        if t == "paragraph_open":
            close = _close(tokens, i)
            blocks.append(render_inline(tokens[i + 1].children or []))
            i = close + 1
        elif t == "heading_open":
            close = _close(tokens, i)
            level = int(tok.tag[1])
            blocks.append("#" * level + " " + render_inline(tokens[i + 1].children or []))
            i = close + 1
        elif t == "fence":
            fence = tok.markup or "```"
            blocks.append(f"{fence}{tok.info}\n{tok.content}{fence}")
            i += 1
        elif t == "code_block":
            blocks.append(f"```\n{tok.content}```")
            i += 1
        elif t == "hr":
            blocks.append("---")
            i += 1
        elif t == "html_block":
            blocks.append(_mark_html(tok.content.rstrip("\n")))
            i += 1
        elif t == "blockquote_open":
            close = _close(tokens, i)
            inner = "\n\n".join(_blocks(tokens[i + 1:close]))
            blocks.append(quote(inner))
            i = close + 1
        elif t in ("bullet_list_open", "ordered_list_open"):
            close = _close(tokens, i)
            blocks.append(_render_list(tokens[i:close + 1]))
            i = close + 1
        elif t == "list_item_open":
            close = _close(tokens, i)
            tight = _is_tight(tokens[i:close + 1])
            blocks.append(_render_item(tokens[i:close + 1], tight))
            i = close + 1
        elif t == "table_open":
            close = _close(tokens, i)
            blocks.append(_render_table(tokens[i:close + 1]))
            i = close + 1
        else:
            i += 1
    return blocks


def _is_tight(tokens: Sequence[Token]) -> bool:
    return all(t.hidden for t in tokens if t.type == "paragraph_open")


def _render_item(tokens: Sequence[Token], tight: bool) -> str:
    opened = tokens[0]
    if opened.info:
        marker = f"{opened.info}{opened.markup}"
    else:
        marker = opened.markup or "-"
    children = _blocks(tokens[1:-1])
    body = ("\n" if tight else "\n\n").join(children)
    width = len(marker) + 1
    return marker + " " + _indent(body, width)[width:] if body else marker


def _render_list(tokens: Sequence[Token]) -> str:
    tight = _is_tight(tokens)
    items: list[str] = []
    i = 1
    while i < len(tokens) - 1:
        if tokens[i].type == "list_item_open":
            close = _close(tokens, i)
            items.append(_render_item(tokens[i:close + 1], tight))
            i = close + 1
        else:
            i += 1
    return ("\n" if tight else "\n\n").join(items)


def _render_table(tokens: Sequence[Token]) -> str:
    rows: list[list[str]] = []
    aligns: list[str] = []
    row: list[str] = []
    for i, tok in enumerate(tokens):
        if tok.type == "tr_open":
            row = []
        elif tok.type in ("th_open", "td_open"):
            if tok.type == "th_open":
                aligns.append((tok.attrGet("style") or "").replace("text-align:", ""))
            row.append(render_inline(tokens[i + 1].children or []).replace("|", "\\|"))
        elif tok.type == "tr_close":
            rows.append(row)
    if not rows:
        return ""
    sep = []
    for align in aligns:
        sep.append({"left": ":---", "right": "---:", "center": ":---:"}.get(align, "---"))
    lines = ["| " + " | ".join(rows[0]) + " |", "| " + " | ".join(sep) + " |"]
    lines.extend("| " + " | ".join(r) + " |" for r in rows[1:])
    return "\n".join(lines)


def quote(text: str, depth: int = 1) -> str:
    """Prefix every line with block quote markers, ``depth`` levels deep."""
    for _ in range(depth):
        text = "\n".join(f"> {line}" if line else ">" for line in text.split("\n"))
    return text


def _strip_marks(text: str) -> tuple[str, tuple[LinkRef, ...]]:
    out: list[str] = []
    refs: list[LinkRef] = []
    length = 0
    pos = 0
    for m in _MARKED_RE.finditer(text):
        before = text[pos:m.start()]
        out.append(before)
        length += len(before)
        target = m.group(1)
        refs.append(LinkRef(length, length + len(target), target))
        out.append(target)
        length += len(target)
        pos = m.end()
    out.append(text[pos:])
    return "".join(out), tuple(refs)


def render_with_links(tokens: Sequence[Token], quote_depth: int = 0) -> tuple[str, tuple[LinkRef, ...]]:
    """
    Markdown text for a run of block tokens, and the character ranges of
    the link/image destinations and HTML src/href values written into it.

    Only real link tokens are reported; bracket-and-paren text inside code
    spans, code blocks or after escapes is left alone. ``quote_depth``
    re-applies the block quote markers of enclosing quotes.
    """
    text = "\n\n".join(b for b in _blocks(tokens) if b)
    if quote_depth:
        text = quote(text, quote_depth)
    return _strip_marks(text)


def render_tokens(tokens: Sequence[Token]) -> str:
    """Markdown text for a run of block tokens (one construct or several)."""
    return render_with_links(tokens)[0]
