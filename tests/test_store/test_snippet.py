"""Tests for search result snippets."""

from spec_mcp.store.snippet import SNIPPET_ELLIPSIS, head_snippet, make_snippet


class TestMakeSnippet:
    def test_short_body_returned_whole(self):
        assert make_snippet("Token refresh flow", ["refresh"]) == "Token refresh flow"

    def test_empty_body(self):
        assert make_snippet("", ["anything"]) == ""

    def test_window_contains_match(self):
        body = "lorem " * 100 + "needle " + "ipsum " * 100

        snippet = make_snippet(body, ["needle"], length=60)

        assert "needle" in snippet
        assert snippet.startswith(SNIPPET_ELLIPSIS)
        assert snippet.endswith(SNIPPET_ELLIPSIS)
        assert len(snippet) <= 60 + 2 * len(SNIPPET_ELLIPSIS)

    def test_match_is_case_insensitive(self):
        body = "x " * 200 + "Authentication happens here"
        assert "Authentication" in make_snippet(body, ["auth"], length=40)

    def test_earliest_term_wins(self):
        body = "first alpha then beta " + "pad " * 100
        snippet = make_snippet(body, ["beta", "alpha"], length=30)
        assert snippet.startswith("first alpha")

    def test_no_match_falls_back_to_head(self):
        body = "word " * 100
        assert make_snippet(body, ["missing"], length=20) == head_snippet(body, 20)

    def test_whitespace_collapsed(self):
        assert make_snippet("a\n\n  b\tc", ["b"]) == "a b c"


class TestHeadSnippet:
    def test_cuts_at_word_boundary(self):
        snippet = head_snippet("alpha beta gamma delta", length=12)
        assert snippet == "alpha beta" + SNIPPET_ELLIPSIS

    def test_short_body(self):
        assert head_snippet("short", length=20) == "short"
