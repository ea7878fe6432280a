"""In-process TF-IDF index used when specs live in markdown files."""

import math
import re
import threading
from collections import Counter
from dataclasses import dataclass

_TOKEN_SPLIT = re.compile(r"[\W_]+")

# Contribution multipliers for a query term that also occurs in the title / category
TITLE_BOOST = 2.0
CATEGORY_BOOST = 1.5


def tokenize(text: str) -> list[str]:
    """Lower-case text and split it on non-alphanumeric boundaries."""
    return [token for token in _TOKEN_SPLIT.split(text.lower()) if token]


@dataclass
class _IndexedDoc:
    title: str
    body: str
    category: str
    title_terms: frozenset[str]
    category_terms: frozenset[str]
    term_counts: Counter
    length: int


class TfidfIndex:
    """
    Term-frequency / inverse-document-frequency scorer over (title, body) pairs.

    For a document d and query terms q1..qn:
        score(d) = sum(tf(t, d) * idf(t) * boost(t, d))
        boost(t, d) = (TITLE_BOOST if t in title(d) else 1)
                    * (CATEGORY_BOOST if t in category(d) else 1)
        tf(t, d) = occurrences of t in d / tokens in d
        idf(t)   = log(N / documents containing t)

    The category only boosts terms already found in the title or body; it
    never makes a document match on its own. Ranking is deterministic: score
    descending, then id ascending.
    """

    def __init__(self) -> None:
        self._docs: dict[int, _IndexedDoc] = {}
        self._doc_freq: Counter = Counter()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._docs)

    def __contains__(self, doc_id: int) -> bool:
        return doc_id in self._docs

    def clear(self) -> None:
        with self._lock:
            self._docs.clear()
            self._doc_freq.clear()

    def put(self, doc_id: int, title: str, body: str, category: str = "") -> None:
        """Insert or replace a document."""
        title_tokens = tokenize(title)
        tokens = title_tokens + tokenize(body)
        doc = _IndexedDoc(
            title=title,
            body=body,
            category=category,
            title_terms=frozenset(title_tokens),
            category_terms=frozenset(tokenize(category)),
            term_counts=Counter(tokens),
            length=len(tokens),
        )
        with self._lock:
            self._remove(doc_id)
            self._docs[doc_id] = doc
            self._doc_freq.update(doc.term_counts.keys())

    def remove(self, doc_id: int) -> None:
        with self._lock:
            self._remove(doc_id)

    def _remove(self, doc_id: int) -> None:
        old = self._docs.pop(doc_id, None)
        if old is None:
            return
        self._doc_freq.subtract(old.term_counts.keys())
        for term in old.term_counts:
            if self._doc_freq[term] <= 0:
                del self._doc_freq[term]

    def entry(self, doc_id: int) -> tuple[str, str] | None:
        """Return the indexed (title, body) of a document."""
        doc = self._docs.get(doc_id)
        return (doc.title, doc.body) if doc else None

    def category(self, doc_id: int) -> str | None:
        doc = self._docs.get(doc_id)
        return doc.category if doc else None

    def doc_ids(self) -> list[int]:
        return sorted(self._docs)

    def idf(self, term: str) -> float:
        df = self._doc_freq.get(term, 0)
        if df == 0:
            return 0.0
        return math.log(len(self._docs) / df)

    def score(self, doc_id: int, terms: list[str]) -> float:
        doc = self._docs[doc_id]
        total = 0.0
        for term in terms:
            count = doc.term_counts.get(term, 0)
            if not count:
                continue
            contribution = (count / doc.length) * self.idf(term)
            if term in doc.title_terms:
                contribution *= TITLE_BOOST
            if term in doc.category_terms:
                contribution *= CATEGORY_BOOST
            total += contribution
        return total

    def search(self, query: str, min_score: float = 0.0) -> list[tuple[int, float]]:
        """Return (doc_id, score) for every document containing a query term, best first."""
        terms = list(dict.fromkeys(tokenize(query)))
        if not terms:
            return []

        with self._lock:
            candidates = {
                doc_id
                for doc_id, doc in self._docs.items()
                if any(term in doc.term_counts for term in terms)
            }
            scored = [(doc_id, self.score(doc_id, terms)) for doc_id in candidates]

        ranked = [hit for hit in scored if hit[1] >= min_score]
        ranked.sort(key=lambda hit: (-hit[1], hit[0]))
        return ranked

    def vocabulary(self, prefix: str) -> list[tuple[str, int]]:
        """Return (term, total occurrences) for indexed terms starting with prefix."""
        occurrences: Counter = Counter()
        with self._lock:
            for doc in self._docs.values():
                for term, count in doc.term_counts.items():
                    if term.startswith(prefix):
                        occurrences[term] += count
        return sorted(occurrences.items(), key=lambda item: (-item[1], item[0]))

    def average_length(self) -> int:
        """Mean of len(title) + len(body) in characters."""
        if not self._docs:
            return 0
        total = sum(len(doc.title) + len(doc.body) for doc in self._docs.values())
        return round(total / len(self._docs))

    def size_bytes(self) -> int:
        """Approximate in-memory posting size: term bytes plus one counter per posting."""
        size = 0
        for doc in self._docs.values():
            for term in doc.term_counts:
                size += len(term.encode("utf-8")) + 8
        return size

    def compact(self) -> None:
        """Drop zero-frequency bookkeeping left behind by removals."""
        with self._lock:
            self._doc_freq = Counter({t: df for t, df in self._doc_freq.items() if df > 0})
