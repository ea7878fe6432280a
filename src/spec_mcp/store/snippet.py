"""Snippet extraction for search results."""

import re

SNIPPET_LENGTH = 160
SNIPPET_ELLIPSIS = "..."

_WHITESPACE = re.compile(r"\s+")


def _first_match(lowered: str, terms: list[str]) -> tuple[int, int] | None:
    """Return (start, end) of the earliest occurrence of any term."""
    best: tuple[int, int] | None = None
    for term in terms:
        needle = term.lower()
        if not needle:
            continue
        pos = lowered.find(needle)
        if pos != -1 and (best is None or pos < best[0]):
            best = (pos, pos + len(needle))
    return best


def _decorate(body: str, start: int, end: int) -> str:
    text = _WHITESPACE.sub(" ", body[start:end]).strip()
    if start > 0:
        text = SNIPPET_ELLIPSIS + text
    if end < len(body):
        text = text + SNIPPET_ELLIPSIS
    return text


def make_snippet(body: str, terms: list[str], length: int = SNIPPET_LENGTH) -> str:
    """
    Extract a short excerpt of body around the first match of any term.

    The window is centred on the match and shrunk to whole words where that
    does not cut into the match itself. When no term occurs in the body the
    first `length` characters are returned instead.
    """
    if not body:
        return ""

    match = _first_match(body.lower(), terms)
    if match is None:
        return head_snippet(body, length)

    match_start, match_end = match
    start = max(0, match_start - length // 2)
    end = min(len(body), start + length)
    start = max(0, end - length)

    if start > 0:
        cut = body.find(" ", start, match_start)
        if cut != -1:
            start = cut + 1
    if end < len(body):
        cut = body.rfind(" ", match_end, end)
        if cut != -1:
            end = cut

    return _decorate(body, start, end)


def head_snippet(body: str, length: int = SNIPPET_LENGTH) -> str:
    """Fallback snippet: the beginning of the body, cut at a word boundary."""
    if len(body) <= length:
        return _decorate(body, 0, len(body))

    end = length
    cut = body.rfind(" ", 0, length)
    if cut > 0:
        end = cut
    return _decorate(body, 0, end)
