"""Token estimation for text.

Counts are heuristic and deterministic: the same text always yields the
same count. Estimators are interchangeable through the TokenCounter
protocol, so a collaborator can plug in a real tokenizer.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

# Rough estimate: 1 token ≈ 4 characters
_CHARS_PER_TOKEN = 4

# Modern tokenizers split words into sub-words
_SUBWORD_FACTOR = 1.2

_WORD_RE = re.compile(r"[^\W_]+")
_SYMBOL_CHARS = frozenset("{}[]()+-*/=<>!&|^~%#@$")

_LANGUAGE_MULTIPLIERS: dict[str, float] = {
    "go": 1.3,
    "javascript": 1.2,
    "python": 1.1,
    "java": 1.4,
    "c++": 1.3,
    "rust": 1.2,
    "markdown": 0.8,
    "yaml": 0.9,
    "json": 1.0,
    "unknown": 1.0,
}


@runtime_checkable
class TokenCounter(Protocol):
    """Anything that turns text into a non-negative token estimate."""

    def count(self, text: str) -> int: ...


class TokenStatistics(BaseModel):
    """Breakdown of a heuristic token count."""

    total_tokens: int = 0
    words: int = 0
    punctuation: int = 0
    symbols: int = 0
    lines: int = 0
    characters: int = 0
    tokens_per_line: float = 0.0
    tokens_per_word: float = 0.0
    characters_per_token: float = 0.0


class HeuristicTokenCounter:
    """Word, punctuation and symbol based token estimator."""

    def __init__(self, language_multipliers: dict[str, float] | None = None) -> None:
        self._multipliers = dict(_LANGUAGE_MULTIPLIERS)
        if language_multipliers:
            self._multipliers.update(language_multipliers)

    def count(self, text: str) -> int:
        if not text:
            return 0
        base = _count_words(text) + _count_punctuation(text) + _count_symbols(text)
        return int(base * _SUBWORD_FACTOR)

    def count_for_language(self, text: str, language: str) -> int:
        """Count tokens, scaled by the language's verbosity multiplier."""
        multiplier = self._multipliers.get(
            language.lower(), self._multipliers["unknown"]
        )
        return int(self.count(text) * multiplier)

    def statistics(self, text: str) -> TokenStatistics:
        words = _count_words(text)
        total = self.count(text)
        lines = len(text.split("\n"))
        stats = TokenStatistics(
            total_tokens=total,
            words=words,
            punctuation=_count_punctuation(text),
            symbols=_count_symbols(text),
            lines=lines,
            characters=len(text),
        )
        if lines:
            stats.tokens_per_line = total / lines
        if words:
            stats.tokens_per_word = total / words
        if total:
            stats.characters_per_token = len(text) / total
        return stats


class CharRatioTokenCounter:
    """Character-length estimator (about four characters per token)."""

    def __init__(self, chars_per_token: int = _CHARS_PER_TOKEN) -> None:
        self._chars_per_token = max(chars_per_token, 1)

    def count(self, text: str) -> int:
        return len(text) // self._chars_per_token


def _count_words(text: str) -> int:
    return len(_WORD_RE.findall(text))


def _count_punctuation(text: str) -> int:
    return sum(1 for ch in text if unicodedata.category(ch).startswith("P"))


def _count_symbols(text: str) -> int:
    return sum(1 for ch in text if ch in _SYMBOL_CHARS)
