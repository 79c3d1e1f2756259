"""Tests for contextor.context.tokens — heuristic token estimation."""

from __future__ import annotations

import pytest

from contextor.context.tokens import (
    CharRatioTokenCounter,
    HeuristicTokenCounter,
    TokenCounter,
)


class TestHeuristicTokenCounter:
    def test_empty_text_is_zero(self):
        assert HeuristicTokenCounter().count("") == 0

    def test_plain_words(self):
        # 2 words × 1.2 sub-word factor, truncated
        assert HeuristicTokenCounter().count("hello world") == 2

    def test_operators_and_punctuation(self):
        # words x, y, 1; punctuation ';'; symbols '=' and '+' → 6 × 1.2
        assert HeuristicTokenCounter().count("x = y + 1;") == 7

    def test_brackets_count_as_punctuation_and_symbols(self):
        # words foo, bar; '(' and ')' are both punctuation and symbols
        assert HeuristicTokenCounter().count("foo(bar)") == 7

    def test_unicode_words(self):
        assert HeuristicTokenCounter().count("naïve café") == 2

    def test_deterministic(self):
        counter = HeuristicTokenCounter()
        text = "def handler(request):\n    return {'ok': True}\n"
        assert counter.count(text) == counter.count(text)

    @pytest.mark.parametrize(
        "language,expected",
        [("python", 13), ("java", 16), ("markdown", 9), ("klingon", 12)],
    )
    def test_language_multipliers(self, language, expected):
        counter = HeuristicTokenCounter()
        text = "one two three four five six seven eight nine ten"
        assert counter.count(text) == 12
        assert counter.count_for_language(text, language) == expected

    def test_custom_multiplier(self):
        counter = HeuristicTokenCounter(language_multipliers={"cobol": 2.0})
        assert counter.count_for_language("hello world", "cobol") == 4

    def test_statistics(self):
        stats = HeuristicTokenCounter().statistics("alpha beta\ngamma delta")
        assert stats.words == 4
        assert stats.lines == 2
        assert stats.total_tokens == 4
        assert stats.tokens_per_line == pytest.approx(2.0)
        assert stats.tokens_per_word == pytest.approx(1.0)
        assert stats.characters == 22

    def test_statistics_of_empty_text(self):
        stats = HeuristicTokenCounter().statistics("")
        assert stats.total_tokens == 0
        assert stats.characters_per_token == 0.0


class TestCharRatioTokenCounter:
    def test_four_chars_per_token(self):
        assert CharRatioTokenCounter().count("abcdefgh") == 2
        assert CharRatioTokenCounter().count("abc") == 0

    def test_custom_ratio(self):
        assert CharRatioTokenCounter(chars_per_token=2).count("abcdef") == 3


class TestProtocol:
    def test_estimators_satisfy_protocol(self):
        assert isinstance(HeuristicTokenCounter(), TokenCounter)
        assert isinstance(CharRatioTokenCounter(), TokenCounter)
