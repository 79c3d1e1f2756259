"""Context selection pipeline.

Scores snapshot files against a task, expands along the dependency
graph, packs under a token budget and memoizes the result.
"""

from contextor.context.adaptive import AdaptiveContextManager
from contextor.context.cache import ContextCache
from contextor.context.graph import DependencyGraphBuilder
from contextor.context.optimizer import ContextOptimizer
from contextor.context.relevance import RelevanceScorer
from contextor.context.tokens import (
    CharRatioTokenCounter,
    HeuristicTokenCounter,
    TokenCounter,
)

__all__ = [
    "AdaptiveContextManager",
    "CharRatioTokenCounter",
    "ContextCache",
    "ContextOptimizer",
    "DependencyGraphBuilder",
    "HeuristicTokenCounter",
    "RelevanceScorer",
    "TokenCounter",
]
