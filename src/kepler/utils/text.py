"""Text helpers for turning proposal narratives into short excerpts."""

from __future__ import annotations

import re
from typing import Iterable, Iterator

_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_EMPHASIS = re.compile(r"[*_`]+")


def iter_prose_lines(markdown: str) -> Iterator[str]:
    """Yield the prose lines of a Markdown document.

    Headings, HTML comments, table-of-contents markers, tables, code fences
    and checklist items are skipped since they make poor excerpts.
    """
    text = _COMMENT.sub("", markdown)
    in_fence = False
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence or not line:
            continue
        if line.startswith(("#", "|", "- [", "* [", "<", "---")):
            continue
        if line.lower() in {"[toc]", "table of contents"}:
            continue
        line = _LINK.sub(r"\1", line)
        yield _EMPHASIS.sub("", line)


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return " ".join(" ".join(line.split()) for line in lines if line.strip())


def make_excerpt(markdown: str, *, max_chars: int = 280) -> str | None:
    """Return the opening prose of ``markdown`` trimmed to ``max_chars``."""
    if not markdown:
        return None
    text = normalize_whitespace(iter_prose_lines(markdown))
    if not text:
        return None
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars].rsplit(" ", 1)[0]
    return cut.rstrip(",.;:") + "…"
