"""Turns free-text user input into FTS5 MATCH expressions."""

import re

MAX_QUERY_LENGTH = 1000
MAX_PREFIX_LENGTH = 100

# Characters that would break out of a quoted FTS5 string or act as operators
_STRIP_CHARS = re.compile(r'["`*]')
_WHITESPACE = re.compile(r"\s+")

# Single words shorter than this are matched exactly rather than as a prefix
MIN_PREFIX_WORD = 3
# Up to this many words are searched as a phrase; longer queries AND the words
MAX_PHRASE_WORDS = 3


def query_terms(query: str) -> list[str]:
    """Split a query into the plain words it searches for."""
    cleaned = _STRIP_CHARS.sub("", query)
    return [word for word in _WHITESPACE.split(cleaned.strip()) if word]


def prepare_fts_query(query: str) -> str:
    """
    Build a safe FTS5 expression from user input.

    Every word is wrapped in double quotes so FTS5 operators inside user
    input are treated as literal text.

    - one word of 3+ chars -> prefix match ("auth"*)
    - one short word -> exact match ("db")
    - 2-3 words -> phrase ("token refresh flow")
    - more words -> each word required ("a" AND "b" AND ...)
    """
    words = query_terms(query)
    if not words:
        return '""'

    if len(words) == 1:
        word = words[0]
        if len(word) >= MIN_PREFIX_WORD:
            return f'"{word}"*'
        return f'"{word}"'

    if len(words) <= MAX_PHRASE_WORDS:
        return '"' + " ".join(words) + '"'

    return " AND ".join(f'"{word}"' for word in words)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so a user prefix matches literally (ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
