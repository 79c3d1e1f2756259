"""Budgeted context selection.

Scores a snapshot's files, orders them by a selection strategy and packs
them greedily under a token budget and a file cap. Must-include files
are admitted first and may push the total over budget; every other file
that does not fit is skipped, never truncated.
"""

from __future__ import annotations

import fnmatch
import logging
import math
from datetime import datetime

from contextor.context.graph import DependencyGraphBuilder
from contextor.context.relevance import RelevanceScorer
from contextor.errors import BudgetInfeasible
from contextor.schemas.config import OptimizerConfig
from contextor.schemas.files import FileRecord, ProjectSnapshot
from contextor.schemas.graph import DependencyGraph
from contextor.schemas.kinds import FileKind, InclusionReason, SelectionStrategy
from contextor.schemas.selection import (
    ContextConstraints,
    ScoredFile,
    SelectedContext,
    SelectedFile,
)
from contextor.schemas.task import Task

logger = logging.getLogger(__name__)

# Dependency strategy blend: relevance vs. graph centrality
_DEPENDENCY_SCORE_WEIGHT = 0.7
_DEPENDENCY_CENTRALITY_WEIGHT = 0.3

# Files edited within this window count as perfectly fresh
_FRESH_WINDOW_HOURS = 24.0
_FRESHNESS_HALF_LIFE_HOURS = 7 * 24.0


def _freshness(file: FileRecord, now: datetime) -> float:
    age_hours = max(0.0, (now - file.modified_at).total_seconds() / 3600)
    if age_hours < _FRESH_WINDOW_HOURS:
        return 1.0
    return math.exp(-math.log(2) * age_hours / _FRESHNESS_HALF_LIFE_HOURS)


def _compactness(sf: ScoredFile) -> float:
    return sf.score / max(sf.file.token_count, 1)


class _Packer:
    """Mutable state of one packing pass."""

    def __init__(self, constraints: ContextConstraints) -> None:
        self.constraints = constraints
        self.files: list[SelectedFile] = []
        self.chosen: set[str] = set()
        self.tokens = 0
        self.reasons: list[str] = []

    @property
    def full(self) -> bool:
        return len(self.files) >= self.constraints.max_files

    def fits(self, sf: ScoredFile) -> bool:
        return self.tokens + sf.file.token_count <= self.constraints.max_tokens

    def add(self, sf: ScoredFile, reason: InclusionReason) -> None:
        self.files.append(SelectedFile(file=sf.file, score=sf.score, reason=reason))
        self.chosen.add(sf.file.path)
        self.tokens += sf.file.token_count


class ContextOptimizer:
    """Selects the files that best serve a task within its constraints."""

    def __init__(
        self,
        scorer: RelevanceScorer | None = None,
        graph_builder: DependencyGraphBuilder | None = None,
        config: OptimizerConfig | None = None,
    ) -> None:
        self._scorer = scorer or RelevanceScorer()
        self._graph_builder = graph_builder or DependencyGraphBuilder()
        self._config = config or OptimizerConfig()

    @property
    def scorer(self) -> RelevanceScorer:
        return self._scorer

    def default_constraints(self) -> ContextConstraints:
        return ContextConstraints(
            max_tokens=self._config.default_max_tokens,
            max_files=self._config.default_max_files,
            strategy=self._config.default_strategy,
            freshness_bias=self._config.freshness_bias,
            dependency_depth=self._config.dependency_depth,
        )

    def graph_for(self, snapshot: ProjectSnapshot) -> DependencyGraph:
        """The snapshot's graph, built from file metadata when absent."""
        if snapshot.graph is not None:
            return snapshot.graph
        return self._graph_builder.build(snapshot.files)

    def select(
        self,
        snapshot: ProjectSnapshot,
        task: Task,
        constraints: ContextConstraints | None = None,
    ) -> SelectedContext:
        """Choose files for *task* from *snapshot*.

        Args:
            snapshot: The project's analyzed files.
            task: The task to select context for.
            constraints: Budget, cap, strategy and filters. Defaults come
                from OptimizerConfig; per-task-type overrides apply.

        Returns:
            The selection, ordered by strategy rank, with dependency
            expansions directly after the file that pulled them in.

        Raises:
            BudgetInfeasible: If nothing can be selected and the
                constraints set ``allow_empty=False``.
        """
        constraints = (constraints or self.default_constraints()).for_task(task.type)
        graph = self.graph_for(snapshot)
        scored = self._scorer.score_all(
            snapshot.files, task, graph, snapshot.captured_at
        )
        by_path = {sf.file.path: sf for sf in scored}

        packer = _Packer(constraints)
        self._note_missing(snapshot, task, packer)

        required = [sf for sf in scored if task.requires(sf.file.path)]
        candidates = [
            sf for sf in scored
            if not task.requires(sf.file.path) and self._eligible(sf, constraints)
        ]
        eligible = {sf.file.path for sf in candidates}

        ranked_required = self._rank(required, constraints, graph, snapshot.captured_at)
        ranked = self._rank(candidates, constraints, graph, snapshot.captured_at)

        for sf in ranked_required:
            if packer.full:
                packer.reasons.append(
                    f"{sf.file.path} requested but dropped: file cap of "
                    f"{constraints.max_files} reached"
                )
                logger.warning(
                    "Must-include file %s exceeds the file cap of %d",
                    sf.file.path,
                    constraints.max_files,
                )
                continue
            over_budget = not packer.fits(sf)
            packer.add(sf, InclusionReason.MUST_INCLUDE)
            if over_budget:
                packer.reasons.append(
                    f"{sf.file.path} included over budget "
                    f"({packer.tokens}/{constraints.max_tokens} tokens): explicitly requested"
                )
            self._expand(sf, packer, graph, by_path, eligible)

        for sf in ranked:
            if packer.full:
                break
            if sf.file.path in packer.chosen or not packer.fits(sf):
                continue
            packer.add(sf, InclusionReason.RANKED)
            self._expand(sf, packer, graph, by_path, eligible)

        if not packer.files and not constraints.allow_empty:
            smallest = min((sf.file.token_count for sf in candidates), default=None)
            raise BudgetInfeasible(constraints.max_tokens, smallest)

        selection_score = (
            sum(f.score for f in packer.files) / len(packer.files) if packer.files else 0.0
        )
        logger.info(
            "Selected %d/%d files (%d/%d tokens) with %s strategy",
            len(packer.files),
            len(snapshot.files),
            packer.tokens,
            constraints.max_tokens,
            constraints.strategy,
        )
        return SelectedContext(
            files=packer.files,
            total_tokens=packer.tokens,
            total_files=len(packer.files),
            strategy=constraints.strategy,
            max_tokens=constraints.max_tokens,
            max_files=constraints.max_files,
            selection_score=selection_score,
            adaptation_reasons=packer.reasons,
        )

    def optimize_for_budget(
        self,
        snapshot: ProjectSnapshot,
        task: Task,
        budget: int,
    ) -> SelectedContext:
        """Select for a bare token budget, leaving tests and docs out.

        When must-include files push the result over budget, the relevance
        floor is raised and dependency expansion is narrowed before giving
        up and returning the over-budget selection.
        """
        constraints = ContextConstraints(
            max_tokens=budget,
            max_files=100,
            min_score=0.1,
            strategy=self._config.default_strategy,
            include_tests=False,
            include_docs=False,
            freshness_bias=self._config.freshness_bias,
            dependency_depth=2,
        )
        selection = self.select(snapshot, task, constraints)
        if selection.total_tokens <= budget:
            return selection

        constraints = constraints.with_changes(min_score=0.3)
        selection = self.select(snapshot, task, constraints)
        if selection.total_tokens > budget:
            selection = self.select(snapshot, task, constraints.with_changes(dependency_depth=1))
        return selection

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _note_missing(snapshot: ProjectSnapshot, task: Task, packer: _Packer) -> None:
        for entry in task.must_include:
            probe = Task(must_include=[entry])
            if not any(probe.requires(f.path) for f in snapshot.files):
                packer.reasons.append(f"{entry} requested but not found in snapshot")
                logger.warning("Must-include path %s not found in snapshot", entry)

    @staticmethod
    def _eligible(sf: ScoredFile, constraints: ContextConstraints) -> bool:
        record = sf.file
        if sf.score < constraints.min_score:
            return False
        if not constraints.include_tests and record.kind == FileKind.TEST:
            return False
        if not constraints.include_docs and record.kind == FileKind.DOC:
            return False
        if constraints.preferred_kinds and record.kind not in constraints.preferred_kinds:
            return False
        return not any(
            fnmatch.fnmatch(record.path, pattern) for pattern in constraints.excluded_patterns
        )

    @staticmethod
    def _rank(
        scored: list[ScoredFile],
        constraints: ContextConstraints,
        graph: DependencyGraph,
        now: datetime,
    ) -> list[ScoredFile]:
        strategy = constraints.strategy
        if strategy == SelectionStrategy.RELEVANCE:
            priority = {sf.file.path: sf.score for sf in scored}
        elif strategy == SelectionStrategy.DEPENDENCY:
            priority = {
                sf.file.path: _DEPENDENCY_SCORE_WEIGHT * sf.score
                + _DEPENDENCY_CENTRALITY_WEIGHT * graph.centrality(sf.file.path)
                for sf in scored
            }
        elif strategy == SelectionStrategy.FRESHNESS:
            bias = constraints.freshness_bias
            priority = {
                sf.file.path: (1 - bias) * sf.score + bias * _freshness(sf.file, now)
                for sf in scored
            }
        elif strategy == SelectionStrategy.COMPACTNESS:
            priority = {sf.file.path: _compactness(sf) for sf in scored}
        else:
            densest = max((_compactness(sf) for sf in scored), default=0.0)
            priority = {
                sf.file.path: 0.5 * sf.score
                + 0.5 * (_compactness(sf) / densest if densest > 0 else 0.0)
                for sf in scored
            }
        return sorted(
            scored,
            key=lambda sf: (-priority[sf.file.path], len(sf.file.path), sf.file.path),
        )

    @staticmethod
    def _expand(
        parent: ScoredFile,
        packer: _Packer,
        graph: DependencyGraph,
        by_path: dict[str, ScoredFile],
        eligible: set[str],
    ) -> None:
        if packer.constraints.strategy != SelectionStrategy.DEPENDENCY:
            return
        depth = packer.constraints.dependency_depth
        for dep in graph.transitive_dependencies(parent.file.path, depth):
            if packer.full:
                return
            if dep in packer.chosen or dep not in eligible:
                continue
            dep_sf = by_path[dep]
            if not packer.fits(dep_sf):
                continue
            packer.add(dep_sf, InclusionReason.DEPENDENCY)
            packer.reasons.append(f"{dep} pulled in as dependency of {parent.file.path}")
