from __future__ import annotations

import re
from typing import Iterable, Optional

from .schemas import ReferenceDocument, Snippet

_WHITESPACE = re.compile(r"\s+")


def excerpt_around(text: str, index: int, before: int = 500, after: int = 1000) -> str:
    start = max(0, index - before)
    end = min(len(text), index + after)
    return "..." + _WHITESPACE.sub(" ", text[start:end]) + "..."


def extract(
    corpus: Iterable[ReferenceDocument],
    query: str,
    tag_filter: Optional[str] = None,
    before: int = 500,
    after: int = 1000,
) -> list[Snippet]:
    """Case-insensitive substring search; one window per matching document, corpus order."""
    needle = query.strip().lower()
    if not needle:
        return []
    snippets: list[Snippet] = []
    for document in corpus:
        if tag_filter and not document.has_tag(tag_filter):
            continue
        text = document.text_content or ""
        index = text.lower().find(needle)
        if index == -1:
            continue
        snippets.append(
            Snippet(
                reference_id=document.id,
                title=document.title,
                excerpt=excerpt_around(text, index, before, after),
            )
        )
    return snippets
