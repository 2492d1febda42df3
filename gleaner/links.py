"""
Relative link rewriting for compiled output.

A link written in ``notes/2025-01-15.md`` as ``./img/pic.png`` must still
point at ``notes/img/pic.png`` when the text is copied into
``.compilations/work.md``.
"""

import os
import re
from pathlib import Path
from typing import Sequence, Union

from .types import LinkRef

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*:")


def has_uri_scheme(target: str) -> bool:
    return _SCHEME_RE.match(target) is not None


def split_target_suffix(target: str) -> tuple[str, str]:
    """Split ``path?query#fragment`` into the path and the suffix."""
    positions = [p for p in (target.find("?"), target.find("#")) if p >= 0]
    if not positions:
        return target, ""
    cut = min(positions)
    return target[:cut], target[cut:]


def rewrite_link_target(target: str, source_file: Union[str, Path], output_file: Union[str, Path]) -> str:
    """
    Re-express a relative target so it resolves the same from ``output_file``.

    Empty targets, anchors, absolute paths and URLs are returned unchanged.
    """
    if (
        not target
        or target.startswith(("#", "?", "//", "/", "\\"))
        or has_uri_scheme(target)
    ):
        return target

    path_part, suffix = split_target_suffix(target)
    if not path_part:
        return target

    source_dir = os.path.dirname(os.fspath(source_file))
    output_dir = os.path.dirname(os.fspath(output_file)) or os.curdir
    resolved = os.path.normpath(os.path.join(source_dir, path_part))
    try:
        relative = os.path.relpath(resolved, output_dir)
    except ValueError:
        # e.g. different drives on Windows
        return target
    return relative.replace(os.sep, "/") + suffix


def splice_links(text: str, links: Sequence[LinkRef], source_file, output_file, base: int = 0) -> str:
    """
    Replace each link target in ``text``.

    ``links`` hold offsets relative to ``base``; they are applied back to
    front so earlier offsets stay valid.
    """
    for link in sorted(links, key=lambda l: l.start, reverse=True):
        start, end = link.start - base, link.end - base
        current = text[start:end]
        rewritten = rewrite_link_target(current, source_file, output_file)
        if rewritten != current:
            text = text[:start] + rewritten + text[end:]
    return text


def splice_links_bytes(data: bytes, links: Sequence[LinkRef], source_file, output_file, base: int = 0) -> bytes:
    """Byte-offset variant of :func:`splice_links` for span payloads."""
    for link in sorted(links, key=lambda l: l.start, reverse=True):
        start, end = link.start - base, link.end - base
        current = data[start:end].decode("utf-8")
        rewritten = rewrite_link_target(current, source_file, output_file)
        if rewritten != current:
            data = data[:start] + rewritten.encode("utf-8") + data[end:]
    return data
