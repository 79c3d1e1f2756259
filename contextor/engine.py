"""Engine facade wiring scorer, graph builder, optimizer, cache and adapter.

Callers construct and own a ContextEngine; there is no module-level
instance. Two engines never share state unless handed the same cache.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from contextor.context.adaptive import AdaptiveContextManager
from contextor.context.cache import CacheStats, ContextCache
from contextor.context.fingerprint import cache_key, project_fingerprint
from contextor.context.graph import DependencyGraphBuilder
from contextor.context.optimizer import ContextOptimizer
from contextor.context.relevance import RelevanceScorer
from contextor.context.tokens import HeuristicTokenCounter, TokenCounter
from contextor.schemas.config import EngineConfig
from contextor.schemas.feedback import ContextFeedback, FeedbackAnalysis, TaskProfile
from contextor.schemas.files import FileRecord, ProjectSnapshot
from contextor.schemas.graph import DependencyGraph
from contextor.schemas.kinds import SelectionStrategy, TaskType
from contextor.schemas.selection import ContextConstraints, ScoredFile, SelectedContext
from contextor.schemas.task import Task

logger = logging.getLogger(__name__)


class ContextEngine:
    """Selects budgeted context for coding tasks.

    Args:
        config: Engine configuration; built-in defaults when omitted.
        token_counter: Estimator used by ``count_tokens``.
        cache: Selection cache. A private one is created from
            ``config.cache`` when omitted; pass a shared instance to let
            several engines reuse each other's selections.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        token_counter: TokenCounter | None = None,
        cache: ContextCache | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._token_counter = token_counter or HeuristicTokenCounter()
        self._scorer = RelevanceScorer(self._config.scorer)
        self._graph_builder = DependencyGraphBuilder()
        self._optimizer = ContextOptimizer(
            self._scorer, self._graph_builder, self._config.optimizer
        )
        self._cache = cache if cache is not None else ContextCache(self._config.cache)
        self._adaptive = AdaptiveContextManager(
            self._optimizer, self._config.adaptive, select=self.select
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def cache(self) -> ContextCache:
        return self._cache

    @property
    def optimizer(self) -> ContextOptimizer:
        return self._optimizer

    @property
    def scorer(self) -> RelevanceScorer:
        return self._scorer

    @property
    def adaptive(self) -> AdaptiveContextManager:
        return self._adaptive

    def select(
        self,
        snapshot: ProjectSnapshot,
        task: Task,
        constraints: ContextConstraints | None = None,
    ) -> SelectedContext:
        """Select context, answering from the cache when possible.

        A cached answer is returned with ``cached=True`` and is never
        recomputed. Misses run the optimizer and store the result.
        """
        constraints = (constraints or self._optimizer.default_constraints()).for_task(
            task.type
        )
        if not self._config.cache.enabled:
            return self._optimizer.select(snapshot, task, constraints)

        key = cache_key(snapshot, task, constraints)
        hit = self._cache.get(key)
        if hit is not None:
            return hit.model_copy(update={"cached": True})

        result = self._optimizer.select(snapshot, task, constraints)
        self._cache.put(key, result)
        return result

    def adapt(
        self,
        snapshot: ProjectSnapshot,
        task: Task,
        soft_token_target: int,
        strategy: SelectionStrategy | None = None,
        max_files: int | None = None,
    ) -> SelectedContext:
        return self._adaptive.adapt(
            snapshot, task, soft_token_target, strategy=strategy, max_files=max_files
        )

    def optimize_for_budget(
        self, snapshot: ProjectSnapshot, task: Task, budget: int
    ) -> SelectedContext:
        return self._optimizer.optimize_for_budget(snapshot, task, budget)

    def score(self, snapshot: ProjectSnapshot, task: Task) -> list[ScoredFile]:
        """Rank every snapshot file with its factor breakdown."""
        graph = self._optimizer.graph_for(snapshot)
        return self._scorer.score_all(snapshot.files, task, graph, snapshot.captured_at)

    def record_outcome(self, feedback: ContextFeedback) -> TaskProfile:
        return self._adaptive.record_outcome(feedback)

    def predict_budget(self, snapshot: ProjectSnapshot, task: Task) -> int:
        return self._adaptive.predict_budget(snapshot, task)

    def profile(self, task_type: TaskType) -> TaskProfile:
        return self._adaptive.profile(task_type)

    def find_reusable(
        self, snapshot: ProjectSnapshot, task: Task, budget: int
    ) -> tuple[SelectedContext, float] | None:
        """A past selection for a similar task that still fits *snapshot*."""
        return self._adaptive.find_reusable(snapshot, task, budget)

    def analyze_feedback(self, window: timedelta | None = None) -> FeedbackAnalysis:
        return self._adaptive.analyze_feedback(window)

    def invalidate(self, snapshot: ProjectSnapshot) -> int:
        """Drop every cached selection computed for *snapshot*."""
        return self._cache.invalidate_project(project_fingerprint(snapshot))

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def build_snapshot(
        self,
        root: str,
        files: list[FileRecord],
        graph: DependencyGraph | None = None,
        captured_at: datetime | None = None,
    ) -> ProjectSnapshot:
        """Assemble a snapshot, building its dependency graph when absent."""
        graph = graph if graph is not None else self._graph_builder.build(files)
        data: dict = {"root": root, "files": files, "graph": graph}
        if captured_at is not None:
            data["captured_at"] = captured_at
        snapshot = ProjectSnapshot(**data)
        logger.debug(
            "Built snapshot of %s: %d files, %d tokens",
            root,
            len(snapshot.files),
            snapshot.total_tokens,
        )
        return snapshot

    def count_tokens(self, text: str, language: str | None = None) -> int:
        """Estimate tokens in *text*, language-scaled when supported."""
        if language and isinstance(self._token_counter, HeuristicTokenCounter):
            return self._token_counter.count_for_language(text, language)
        return self._token_counter.count(text)
