"""Tests for the in-process TF-IDF index."""

import math

import pytest

from spec_mcp.store.tfidf import CATEGORY_BOOST, TITLE_BOOST, TfidfIndex, tokenize


@pytest.fixture
def index() -> TfidfIndex:
    idx = TfidfIndex()
    idx.put(1, "Auth service", "token refresh and session handling")
    idx.put(2, "Billing", "invoices and payment tokens")
    idx.put(3, "Caching", "cache invalidation strategy")
    return idx


def test_tokenize():
    assert tokenize("Token-Refresh, flow_v2!") == ["token", "refresh", "flow", "v2"]


def test_idf(index: TfidfIndex):
    assert index.idf("billing") == pytest.approx(math.log(3 / 1))
    assert index.idf("and") == pytest.approx(math.log(3 / 2))
    assert index.idf("unknown") == 0.0


def test_single_document_scores_zero():
    idx = TfidfIndex()
    idx.put(1, "Only", "lonely document")
    assert idx.search("lonely") == [(1, 0.0)]


def test_search_only_returns_matching_docs(index: TfidfIndex):
    assert [doc_id for doc_id, _ in index.search("invalidation")] == [3]
    assert index.search("nothing here") == []
    assert index.search("!!!") == []


def test_title_boost(index: TfidfIndex):
    index.put(4, "Notes", "billing notes")
    title_score = dict(index.search("billing"))[2]
    body_score = dict(index.search("billing"))[4]

    tf_title = 1 / 5
    tf_body = 1 / 3
    idf = math.log(4 / 2)
    assert title_score == pytest.approx(tf_title * idf * TITLE_BOOST)
    assert body_score == pytest.approx(tf_body * idf)


def test_category_boost():
    idx = TfidfIndex()
    idx.put(1, "Alpha", "payments flow", "general")
    idx.put(2, "Beta", "payments flow", "payments")
    idx.put(3, "Gamma", "other text")
    # Category alone never makes a document match
    idx.put(4, "Delta", "unrelated words", "payments")

    results = idx.search("payments")

    assert [doc_id for doc_id, _ in results] == [2, 1]
    scores = dict(results)
    assert scores[2] == pytest.approx(scores[1] * CATEGORY_BOOST)
    assert idx.category(2) == "payments"
    assert idx.category(99) is None


def test_ties_broken_by_id():
    idx = TfidfIndex()
    idx.put(3, "Same", "shared words")
    idx.put(1, "Same", "shared words")
    idx.put(2, "Other", "different text")

    assert [doc_id for doc_id, _ in idx.search("shared")] == [1, 3]


def test_search_is_deterministic(index: TfidfIndex):
    assert index.search("token and") == index.search("token and")


def test_min_score(index: TfidfIndex):
    hits = index.search("and")
    assert index.search("and", min_score=max(score for _, score in hits) + 1) == []


def test_put_replaces_document(index: TfidfIndex):
    index.put(2, "Billing", "refunds")

    assert index.entry(2) == ("Billing", "refunds")
    assert index.idf("invoices") == 0.0
    assert len(index) == 3


def test_remove(index: TfidfIndex):
    index.remove(3)
    index.remove(99)

    assert 3 not in index
    assert index.doc_ids() == [1, 2]
    assert index.search("caching") == []


def test_vocabulary(index: TfidfIndex):
    index.put(4, "Tokens", "token token")
    vocab = index.vocabulary("tok")

    assert vocab[0] == ("token", 3)
    assert ("tokens", 2) in vocab
    assert all(term.startswith("tok") for term, _ in vocab)


def test_average_length_and_size(index: TfidfIndex):
    assert TfidfIndex().average_length() == 0
    assert index.average_length() > 0
    assert index.size_bytes() > 0


def test_clear(index: TfidfIndex):
    index.clear()
    assert len(index) == 0
    assert index.search("token") == []
