"""Relevance scoring of project files against a task.

Each file gets eight factors in [0, 1] combined by configurable weights
that sum to 1.0. Dependency centrality is computed in a second pass,
relative to the files that scored highest without it.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime

from contextor import paths
from contextor.errors import PartialAnalysisFailure
from contextor.schemas.config import ScorerConfig
from contextor.schemas.files import FileRecord
from contextor.schemas.graph import DependencyGraph
from contextor.schemas.kinds import FileKind, TaskType
from contextor.schemas.selection import ScoredFile, ScoringFactors
from contextor.schemas.task import Task

logger = logging.getLogger(__name__)

_NEUTRAL = 0.5
_PUNCTUATION = ".,!?;:\"'"

# Conventional source directories and their path factor
_CORE_DIRS: dict[str, float] = {
    "cmd": 0.9,
    "core": 0.9,
    "internal": 0.8,
    "api": 0.8,
    "src": 0.8,
    "pkg": 0.7,
    "lib": 0.7,
}

_KIND_PREFERENCES: dict[TaskType, dict[FileKind, float]] = {
    TaskType.FEATURE: {
        FileKind.SOURCE: 0.9, FileKind.TEST: 0.3,
        FileKind.CONFIG: 0.5, FileKind.DOC: 0.2,
    },
    TaskType.DEBUG: {
        FileKind.SOURCE: 1.0, FileKind.TEST: 0.7,
        FileKind.CONFIG: 0.4, FileKind.DOC: 0.1,
    },
    TaskType.REFACTOR: {
        FileKind.SOURCE: 1.0, FileKind.TEST: 0.8,
        FileKind.CONFIG: 0.3, FileKind.DOC: 0.2,
    },
    TaskType.TEST: {
        FileKind.SOURCE: 0.8, FileKind.TEST: 1.0,
        FileKind.CONFIG: 0.3, FileKind.DOC: 0.2,
    },
    TaskType.DOCUMENTATION: {
        FileKind.SOURCE: 0.5, FileKind.TEST: 0.2,
        FileKind.CONFIG: 0.4, FileKind.DOC: 1.0,
    },
}

_CODE_ROW = {
    TaskType.FEATURE: 0.9, TaskType.DEBUG: 0.9, TaskType.REFACTOR: 0.9,
    TaskType.TEST: 0.9, TaskType.DOCUMENTATION: 0.6,
}
_STRUCTURED_ROW = {
    TaskType.FEATURE: 0.5, TaskType.DEBUG: 0.4, TaskType.REFACTOR: 0.3,
    TaskType.TEST: 0.4, TaskType.DOCUMENTATION: 0.6,
}
_LANGUAGE_PREFERENCES: dict[str, dict[TaskType, float]] = {
    "go": _CODE_ROW,
    "python": _CODE_ROW,
    "javascript": _CODE_ROW,
    "typescript": _CODE_ROW,
    "rust": _CODE_ROW,
    "java": _CODE_ROW,
    "markdown": {
        TaskType.FEATURE: 0.3, TaskType.DEBUG: 0.2, TaskType.REFACTOR: 0.2,
        TaskType.TEST: 0.3, TaskType.DOCUMENTATION: 1.0,
    },
    "yaml": _STRUCTURED_ROW,
    "json": _STRUCTURED_ROW,
    "toml": _STRUCTURED_ROW,
}

# Path substrings that hint at a task type, with the factor they earn
_TASK_PATTERNS: dict[TaskType, tuple[tuple[str, ...], float]] = {
    TaskType.DEBUG: (("error", "log", "exception", "trace"), 0.8),
    TaskType.REFACTOR: (("interface", "abstract", "base", "protocol"), 0.8),
    TaskType.DOCUMENTATION: (("readme", "guide", "docs"), 0.9),
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class RelevanceScorer:
    """Scores files by how likely they are to matter for a task.

    All tuning comes from a ScorerConfig, validated on construction;
    scoring itself never raises for a well-formed snapshot.
    """

    def __init__(self, config: ScorerConfig | None = None) -> None:
        self._config = config or ScorerConfig()
        self._stop_words = {w.lower() for w in self._config.stop_words}
        self._strength_cache: tuple[DependencyGraph, dict[tuple[str, str], float]] | None = None

    @property
    def config(self) -> ScorerConfig:
        return self._config

    def extract_keywords(self, description: str) -> list[str]:
        """Lower-cased description words minus stop words and short words."""
        keywords: list[str] = []
        for word in description.lower().split():
            word = word.strip(_PUNCTUATION)
            if len(word) > 2 and word not in self._stop_words:
                keywords.append(word)
        return keywords

    def factors(
        self,
        file: FileRecord,
        task: Task,
        graph: DependencyGraph | None = None,
        reference_time: datetime | None = None,
        hubs: set[str] | None = None,
    ) -> ScoringFactors:
        """Compute all eight factors for one file.

        Args:
            file: The file to score.
            task: The task the selection is for.
            graph: Dependency graph of the snapshot, if any.
            reference_time: "Now" for recency; defaults to the wall clock.
            hubs: High-scoring files to measure dependency centrality
                against. When omitted, the file's overall graph centrality
                is used instead.

        Raises:
            PartialAnalysisFailure: If a factor cannot be computed.
        """
        now = reference_time or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        try:
            return ScoringFactors(
                keyword_match=self._keyword_match(file, task),
                path_relevance=self._path_relevance(file, task),
                file_type=self._file_type(file, task),
                recency=self._recency(file, now),
                size=self._size(file),
                dependency=self._dependency(file, graph, hubs),
                task_type=self._task_type(file, task),
                language=self._language(file, task),
            )
        except (ValueError, TypeError, ArithmeticError) as exc:
            raise PartialAnalysisFailure(file.path, str(exc)) from exc

    def combine(self, factors: ScoringFactors) -> float:
        """Weighted sum of *factors*, clamped to [0, 1]."""
        weights = self._config.weights
        total = (
            factors.keyword_match * weights.keyword_match
            + factors.path_relevance * weights.path_relevance
            + factors.file_type * weights.file_type
            + factors.recency * weights.recency
            + factors.size * weights.size
            + factors.dependency * weights.dependency
            + factors.task_type * weights.task_type
            + factors.language * weights.language
        )
        return _clamp(total)

    def score(
        self,
        file: FileRecord,
        task: Task,
        graph: DependencyGraph | None = None,
        reference_time: datetime | None = None,
        hubs: set[str] | None = None,
    ) -> float:
        """Relevance of a single file in [0, 1]."""
        return self.combine(self.factors(file, task, graph, reference_time, hubs))

    def score_all(
        self,
        files: list[FileRecord],
        task: Task,
        graph: DependencyGraph | None = None,
        reference_time: datetime | None = None,
    ) -> list[ScoredFile]:
        """Score every file and rank them.

        The first pass scores without the dependency factor. The top
        ``centrality_top_fraction`` of that pass become the hubs the
        second pass measures centrality against. Files whose factors
        cannot be computed are logged and scored 0.

        Returns:
            ScoredFiles sorted by score descending, ties by path.
        """
        now = reference_time or datetime.now(UTC)

        first_pass = [
            self._safe_score(f, task, None, now, None) for f in files
        ]
        if graph is None or not files:
            return _ranked(first_pass)

        hub_count = max(1, math.ceil(len(files) * self._config.centrality_top_fraction))
        hubs = {sf.file.path for sf in _ranked(first_pass)[:hub_count]}
        logger.debug("Dependency centrality measured against %d hub(s)", len(hubs))

        second_pass = [
            self._safe_score(f, task, graph, now, hubs) for f in files
        ]
        return _ranked(second_pass)

    def _safe_score(
        self,
        file: FileRecord,
        task: Task,
        graph: DependencyGraph | None,
        now: datetime,
        hubs: set[str] | None,
    ) -> ScoredFile:
        try:
            factors = self.factors(file, task, graph, now, hubs)
        except PartialAnalysisFailure as exc:
            logger.warning("%s; scoring it as 0", exc)
            return ScoredFile(file=file, score=0.0, factors=ScoringFactors())
        return ScoredFile(file=file, score=self.combine(factors), factors=factors)

    # -- factors --------------------------------------------------------

    def _keyword_match(self, file: FileRecord, task: Task) -> float:
        if task.requires(file.path):
            return 1.0
        keywords = task.keywords or self.extract_keywords(task.description)
        if not keywords:
            return _NEUTRAL

        name = file.name.lower()
        path = file.path.lower()
        matches = 0
        for keyword in keywords:
            if keyword in name:
                matches += 2
            elif keyword in path:
                matches += 1
        return min(1.0, matches / (len(keywords) * 2))

    def _path_relevance(self, file: FileRecord, task: Task) -> float:
        if task.type != TaskType.TEST and (
            file.kind == FileKind.TEST or paths.is_test_path(file.path)
        ):
            return 0.2
        if task.type != TaskType.DOCUMENTATION and (
            file.kind == FileKind.DOC or paths.is_doc_path(file.path)
        ):
            return 0.3
        if paths.is_vendored_path(file.path):
            return 0.1
        boosts = [_CORE_DIRS[seg] for seg in paths.dir_segments(file.path) if seg in _CORE_DIRS]
        if boosts:
            return max(boosts)
        return _NEUTRAL

    def _file_type(self, file: FileRecord, task: Task) -> float:
        return _KIND_PREFERENCES.get(task.type, {}).get(file.kind, _NEUTRAL)

    def _recency(self, file: FileRecord, now: datetime) -> float:
        age_hours = max(0.0, (now - file.modified_at).total_seconds() / 3600)
        half_life = self._config.recency_half_life_hours
        return math.exp(-math.log(2) * age_hours / half_life)

    def _size(self, file: FileRecord) -> float:
        optimal = self._config.optimal_file_tokens
        tokens = file.token_count
        if tokens <= optimal:
            return tokens / optimal
        excess = tokens - optimal
        penalized = 1.0 - (excess / optimal) * self._config.size_penalty
        return max(self._config.size_floor, penalized)

    def _dependency(
        self,
        file: FileRecord,
        graph: DependencyGraph | None,
        hubs: set[str] | None,
    ) -> float:
        if graph is None or file.path not in graph:
            return 0.0
        if hubs is None:
            return graph.centrality(file.path)

        others = hubs - {file.path}
        if not others:
            return 0.0
        strengths = self._strengths(graph)
        inbound = sum(strengths.get((hub, file.path), 0.0) for hub in others)
        outbound = sum(strengths.get((file.path, hub), 0.0) for hub in others)
        return _clamp((2 * inbound + outbound) / (3 * len(others)))

    def _strengths(self, graph: DependencyGraph) -> dict[tuple[str, str], float]:
        cached = self._strength_cache
        if cached is not None and cached[0] is graph:
            return cached[1]
        strengths = graph.edge_strengths()
        self._strength_cache = (graph, strengths)
        return strengths

    def _task_type(self, file: FileRecord, task: Task) -> float:
        boosts = self._config.task_type_boosts.get(task.type)
        if boosts and file.kind in boosts:
            return boosts[file.kind]

        if task.type == TaskType.TEST:
            return 1.0 if paths.is_test_path(file.path) else _NEUTRAL
        pattern = _TASK_PATTERNS.get(task.type)
        if pattern is not None:
            needles, boost = pattern
            lowered = file.path.lower()
            if any(needle in lowered for needle in needles):
                return boost
        return _NEUTRAL

    def _language(self, file: FileRecord, task: Task) -> float:
        row = _LANGUAGE_PREFERENCES.get(file.language.lower())
        if row is None:
            return _NEUTRAL
        return row.get(task.type, _NEUTRAL)


def _ranked(scored: list[ScoredFile]) -> list[ScoredFile]:
    return sorted(scored, key=lambda sf: (-sf.score, sf.file.path))
