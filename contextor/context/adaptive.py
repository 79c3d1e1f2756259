"""Adaptive selection: bounded retries plus in-process outcome learning.

The manager wraps a select function (the optimizer, or the engine's
cached path). When a selection leaves most of the soft token target
unused, or past outcomes for the task type were poor, it retries with a
larger file cap, another strategy or a looser budget. Attempts are
bounded by ``AdaptiveConfig.max_attempts`` and every adjustment is
recorded in the result's ``adaptation_reasons``.

Recorded outcomes also feed two lookups: reuse of a past selection made
for a similar task, and a trend report over recent feedback.

Learned TaskProfiles and the outcome history live in memory only and
are lost on restart.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter, deque
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from threading import Lock

from contextor.context.optimizer import ContextOptimizer
from contextor.schemas.config import AdaptiveConfig
from contextor.schemas.feedback import (
    ContextFeedback,
    FeedbackAnalysis,
    FileTally,
    QualityPoint,
    TaskProfile,
)
from contextor.schemas.files import ProjectSnapshot
from contextor.schemas.kinds import SelectionStrategy, TaskType
from contextor.schemas.selection import ContextConstraints, SelectedContext
from contextor.schemas.task import Priority, Task, TaskScope

logger = logging.getLogger(__name__)

SelectFn = Callable[[ProjectSnapshot, Task, ContextConstraints], SelectedContext]

DEFAULT_STRATEGIES: dict[TaskType, SelectionStrategy] = {
    TaskType.FEATURE: SelectionStrategy.RELEVANCE,
    TaskType.TEST: SelectionStrategy.RELEVANCE,
    TaskType.DOCUMENTATION: SelectionStrategy.RELEVANCE,
    TaskType.DEBUG: SelectionStrategy.DEPENDENCY,
    TaskType.REFACTOR: SelectionStrategy.DEPENDENCY,
    TaskType.GENERAL: SelectionStrategy.BALANCED,
}

# Order in which untried strategies are attempted on retry
FALLBACK_CHAIN: list[SelectionStrategy] = [
    SelectionStrategy.BALANCED,
    SelectionStrategy.COMPACTNESS,
    SelectionStrategy.RELEVANCE,
    SelectionStrategy.DEPENDENCY,
    SelectionStrategy.FRESHNESS,
]

# Budget prediction by project size
_BASE_BUDGET = 8000
_LARGE_PROJECT_TOKENS = 200_000
_LARGE_PROJECT_BUDGET = 12000
_SMALL_PROJECT_TOKENS = 50_000
_SMALL_PROJECT_BUDGET = 4000
_FULL_CONFIDENCE_SAMPLES = 20

# Applied to the size-based budget before blending with the learned optimum
_SCOPE_FACTORS: dict[TaskScope, float] = {
    TaskScope.FILE: 0.5,
    TaskScope.MODULE: 1.0,
    TaskScope.PROJECT: 1.5,
    TaskScope.SYSTEM: 2.0,
}
_PRIORITY_FACTORS: dict[Priority, float] = {
    Priority.LOW: 0.8,
    Priority.MEDIUM: 1.0,
    Priority.HIGH: 1.2,
    Priority.CRITICAL: 1.5,
}

_WORD_RE = re.compile(r"[A-Za-z0-9]+")
_MIN_WORD_LENGTH = 3

_LOW_SUCCESS_RATE = 0.7
_TOP_FILES = 10
_INSUFFICIENT_SAMPLES = (
    "Insufficient feedback samples for reliable insights; continue collecting outcomes"
)


def _ema(old: float, new: float, alpha: float) -> float:
    return alpha * new + (1 - alpha) * old


def _description_words(text: str) -> set[str]:
    return {w.lower() for w in _WORD_RE.findall(text) if len(w) >= _MIN_WORD_LENGTH}


def task_similarity(a: Task, b: Task) -> float:
    """Jaccard similarity of two tasks' description words, in [0, 1].

    Tasks of different types never match, and a task without description
    words matches nothing.
    """
    if a.type != b.type:
        return 0.0
    words_a = _description_words(a.description)
    words_b = _description_words(b.description)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def adapt_reused_context(
    selection: SelectedContext, source: Task, similarity: float
) -> SelectedContext:
    """Mark a selection made for *source* as reused at *similarity*.

    The selection score is scaled by the similarity.
    """
    label = source.description or source.type.value
    return selection.model_copy(
        update={
            "selection_score": selection.selection_score * similarity,
            "cached": False,
            "adaptation_reasons": list(selection.adaptation_reasons)
            + [f"Reused selection from similar task {label!r} (similarity {similarity:.2f})"],
        }
    )


def _refresh(selection: SelectedContext, snapshot: ProjectSnapshot) -> SelectedContext | None:
    """Re-read *selection*'s files from *snapshot*; None if one is gone."""
    files = []
    for selected in selection.files:
        record = snapshot.get(selected.file.path)
        if record is None:
            return None
        files.append(selected.model_copy(update={"file": record}))
    return selection.model_copy(
        update={
            "files": files,
            "total_tokens": sum(f.file.token_count for f in files),
            "total_files": len(files),
        }
    )


def _tally(counter: Counter[str]) -> list[FileTally]:
    ranked = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return [FileTally(path=path, count=count) for path, count in ranked[:_TOP_FILES]]


class AdaptiveContextManager:
    """Retries selections that under-use their budget and learns from outcomes."""

    def __init__(
        self,
        optimizer: ContextOptimizer,
        config: AdaptiveConfig | None = None,
        select: SelectFn | None = None,
    ) -> None:
        self._optimizer = optimizer
        self._config = config or AdaptiveConfig()
        self._select = select or optimizer.select
        self._profiles: dict[TaskType, TaskProfile] = {}
        self._history: deque[ContextFeedback] = deque(maxlen=self._config.history_size)
        self._lock = Lock()

    def profile(self, task_type: TaskType) -> TaskProfile:
        """Current learned profile for *task_type* (empty if none yet)."""
        with self._lock:
            existing = self._profiles.get(task_type)
            if existing is None:
                return TaskProfile(task_type=task_type)
            return existing.model_copy(deep=True)

    def profiles(self) -> dict[TaskType, TaskProfile]:
        with self._lock:
            return {t: p.model_copy(deep=True) for t, p in self._profiles.items()}

    def starting_strategy(self, task_type: TaskType) -> tuple[SelectionStrategy, str | None]:
        """Strategy for a first attempt, and the reason when it was learned."""
        profile = self.profile(task_type)
        if (
            profile.preferred_strategy is not None
            and profile.sample_count >= self._config.min_samples
            and profile.success_rate >= self._config.quality_threshold
        ):
            reason = (
                f"Using learned {profile.preferred_strategy} strategy for "
                f"{task_type} tasks ({profile.success_rate:.0%} success over "
                f"{profile.sample_count} outcomes)"
            )
            return profile.preferred_strategy, reason
        return DEFAULT_STRATEGIES.get(task_type, SelectionStrategy.BALANCED), None

    def adapt(
        self,
        snapshot: ProjectSnapshot,
        task: Task,
        soft_token_target: int,
        strategy: SelectionStrategy | None = None,
        max_files: int | None = None,
    ) -> SelectedContext:
        """Select context for *task*, retrying while the budget goes unused.

        Args:
            snapshot: The project's analyzed files.
            task: The task to select context for.
            soft_token_target: Token count the caller hopes to fill.
            strategy: Starting strategy; learned or task-type default
                when omitted.
            max_files: Starting file cap; optimizer default when omitted.

        Returns:
            The attempt that selected the most tokens, with every
            adjustment listed in ``adaptation_reasons``.

        Raises:
            ValueError: If *soft_token_target* is not positive.
        """
        if soft_token_target <= 0:
            raise ValueError(f"soft_token_target must be positive, got {soft_token_target}")
        cfg = self._config
        reasons: list[str] = []

        if strategy is None:
            strategy, learned = self.starting_strategy(task.type)
            if learned:
                reasons.append(learned)

        budget_cap = max(soft_token_target, int(soft_token_target * cfg.max_budget_ratio))
        budget = soft_token_target
        profile = self.profile(task.type)
        if profile.sample_count > 0 and profile.avg_quality < cfg.quality_threshold:
            budget = min(budget_cap, int(budget * cfg.budget_growth))
            reasons.append(
                f"Budget loosened to {budget} tokens: prior {task.type} selections "
                f"averaged quality {profile.avg_quality:.2f}"
            )

        base = self._optimizer.default_constraints()
        constraints = base.with_changes(
            max_tokens=budget,
            strategy=strategy,
            max_files=max_files or base.max_files,
        )

        tried = {strategy}
        best: SelectedContext | None = None
        best_attempt = 0
        attempts = 0
        for attempt in range(1, cfg.max_attempts + 1):
            attempts = attempt
            result = self._select(snapshot, task, constraints)
            logger.debug(
                "Adaptive attempt %d: %d tokens, %d files (%s, budget %d)",
                attempt,
                result.total_tokens,
                result.total_files,
                constraints.strategy,
                constraints.max_tokens,
            )
            if best is None or result.total_tokens > best.total_tokens:
                best, best_attempt = result, attempt

            used = result.total_tokens
            if used >= cfg.underuse_ratio * soft_token_target:
                break
            selected = set(result.paths)
            if not any(f.path not in selected for f in snapshot.files):
                break
            if attempt == cfg.max_attempts:
                break

            prefix = (
                f"Attempt {attempt} used {used}/{soft_token_target} tokens"
            )
            if result.total_files >= constraints.max_files:
                new_cap = math.ceil(constraints.max_files * cfg.file_growth)
                reasons.append(
                    f"{prefix} with the file cap of {constraints.max_files} reached; "
                    f"raising max_files to {new_cap}"
                )
                constraints = constraints.with_changes(max_files=new_cap)
                continue

            untried = next((s for s in FALLBACK_CHAIN if s not in tried), None)
            if untried is not None:
                reasons.append(
                    f"{prefix}; switching strategy from {constraints.strategy} to {untried}"
                )
                tried.add(untried)
                constraints = constraints.with_changes(strategy=untried)
                continue

            if constraints.max_tokens < budget_cap:
                new_budget = min(budget_cap, int(constraints.max_tokens * cfg.budget_growth))
                reasons.append(
                    f"{prefix}; loosening budget from {constraints.max_tokens} to {new_budget}"
                )
                constraints = constraints.with_changes(max_tokens=new_budget)
                continue
            break

        if best_attempt != attempts:
            reasons.append(
                f"Returned attempt {best_attempt} of {attempts}: it selected the most tokens"
            )
        if reasons:
            logger.info("Adapted %s selection: %s", task.type, "; ".join(reasons))
        return best.model_copy(
            update={"adaptation_reasons": list(best.adaptation_reasons) + reasons}
        )

    def record_outcome(self, feedback: ContextFeedback) -> TaskProfile:
        """Fold one outcome into the task type's profile."""
        cfg = self._config
        alpha = cfg.learning_rate
        task_type = feedback.task.type
        selection = feedback.selection
        tokens = feedback.tokens_used or selection.total_tokens
        success = 1.0 if feedback.success else 0.0

        with self._lock:
            current = self._profiles.get(task_type) or TaskProfile(task_type=task_type)
            first = current.sample_count == 0

            optimal_budget = current.optimal_budget
            if feedback.success and feedback.quality_score > cfg.quality_threshold:
                if optimal_budget == 0:
                    optimal_budget = tokens
                else:
                    optimal_budget = round(_ema(optimal_budget, tokens, alpha))

            preferred = current.preferred_strategy
            if feedback.success and feedback.quality_score > current.avg_quality:
                preferred = selection.strategy

            updated = TaskProfile(
                task_type=task_type,
                sample_count=current.sample_count + 1,
                avg_quality=(
                    feedback.quality_score if first
                    else _ema(current.avg_quality, feedback.quality_score, alpha)
                ),
                success_rate=success if first else _ema(current.success_rate, success, alpha),
                optimal_budget=optimal_budget,
                preferred_strategy=preferred,
                typical_file_count=(
                    float(selection.total_files) if first
                    else _ema(current.typical_file_count, selection.total_files, alpha)
                ),
                updated_at=feedback.recorded_at,
            )
            self._profiles[task_type] = updated
            self._history.append(feedback)

        logger.debug(
            "Recorded %s outcome (success=%s, quality=%.2f); %d sample(s)",
            task_type,
            feedback.success,
            feedback.quality_score,
            updated.sample_count,
        )
        return updated.model_copy(deep=True)

    def find_reusable(
        self, snapshot: ProjectSnapshot, task: Task, budget: int
    ) -> tuple[SelectedContext, float] | None:
        """Best past selection for a task similar to *task*, if any.

        Only successful outcomes whose task similarity reaches
        ``reuse_similarity`` qualify. Their files are re-read from
        *snapshot*; a selection naming a file the snapshot lacks, missing
        one of the task's must-include files, or exceeding *budget* at
        current sizes is skipped. Among equals the newest outcome wins.

        Returns:
            The reused selection and its similarity, or None.
        """
        with self._lock:
            history = list(self._history)
        required = {f.path for f in snapshot.files if task.requires(f.path)}

        best: tuple[ContextFeedback, SelectedContext] | None = None
        best_similarity = 0.0
        for feedback in reversed(history):
            if not feedback.success or not feedback.selection.files:
                continue
            similarity = task_similarity(feedback.task, task)
            if similarity < self._config.reuse_similarity or similarity <= best_similarity:
                continue
            refreshed = _refresh(feedback.selection, snapshot)
            if refreshed is None or refreshed.total_tokens > budget:
                continue
            if not required <= set(refreshed.paths):
                continue
            best, best_similarity = (feedback, refreshed), similarity

        if best is None:
            return None
        source, refreshed = best
        logger.debug(
            "Reusing %s selection of %d files (similarity %.2f)",
            task.type,
            refreshed.total_files,
            best_similarity,
        )
        return adapt_reused_context(refreshed, source.task, best_similarity), best_similarity

    def analyze_feedback(
        self, window: timedelta | None = None, now: datetime | None = None
    ) -> FeedbackAnalysis:
        """Summarize recorded outcomes, optionally only the last *window*."""
        cfg = self._config
        with self._lock:
            history = list(self._history)
        if window is not None:
            cutoff = (now or datetime.now(UTC)) - window
            history = [f for f in history if f.recorded_at >= cutoff]

        if not history:
            return FeedbackAnalysis(recommendations=[_INSUFFICIENT_SAMPLES])

        total = len(history)
        avg_quality = sum(f.quality_score for f in history) / total
        success_rate = sum(1 for f in history if f.success) / total

        by_strategy: dict[SelectionStrategy, list[float]] = {}
        for f in history:
            by_strategy.setdefault(f.selection.strategy, []).append(f.quality_score)
        effectiveness = {s: sum(q) / len(q) for s, q in by_strategy.items()}

        recommendations: list[str] = []
        if avg_quality < cfg.quality_threshold:
            recommendations.append(
                "Context quality is below threshold; consider adjusting selection strategies"
            )
        if success_rate < _LOW_SUCCESS_RATE:
            recommendations.append(
                "Low success rate detected; review task-specific context patterns"
            )
        if total < cfg.insight_min_samples:
            recommendations.append(_INSUFFICIENT_SAMPLES)

        return FeedbackAnalysis(
            total_samples=total,
            avg_quality=avg_quality,
            success_rate=success_rate,
            strategy_effectiveness=effectiveness,
            top_missing_files=_tally(Counter(p for f in history for p in f.missing_files)),
            top_unnecessary_files=_tally(
                Counter(p for f in history for p in f.unnecessary_files)
            ),
            quality_trend=[
                QualityPoint(
                    recorded_at=f.recorded_at,
                    quality=f.quality_score,
                    strategy=f.selection.strategy,
                    task_type=f.task.type,
                )
                for f in history
            ],
            recommendations=recommendations,
        )

    def predict_budget(self, snapshot: ProjectSnapshot, task: Task) -> int:
        """Suggest a token budget from project size, task and learned outcomes.

        The size-based budget is scaled by the task's scope and priority,
        then blended with the learned optimum.
        """
        total = snapshot.total_tokens
        if total > _LARGE_PROJECT_TOKENS:
            budget = _LARGE_PROJECT_BUDGET
        elif total < _SMALL_PROJECT_TOKENS:
            budget = _SMALL_PROJECT_BUDGET
        else:
            budget = _BASE_BUDGET
        budget = int(budget * _SCOPE_FACTORS[task.scope] * _PRIORITY_FACTORS[task.priority])

        profile = self.profile(task.type)
        if profile.optimal_budget > 0:
            weight = min(1.0, profile.sample_count / _FULL_CONFIDENCE_SAMPLES)
            budget = int(budget * (1 - weight) + profile.optimal_budget * weight)
        return budget

    def predict_quality(self, selection: SelectedContext, task_type: TaskType) -> float:
        """Expected completion quality of *selection*, from history.

        Starts from the profile's average quality and nudges it by how
        well the selection used its budget and how relevant it was.
        """
        profile = self.profile(task_type)
        if profile.sample_count < self._config.min_samples:
            return 0.75

        adjustment = 0.0
        if selection.max_tokens:
            token_ratio = selection.total_tokens / selection.max_tokens
            if 0.7 <= token_ratio <= 0.9:
                adjustment += 0.05
            elif token_ratio < 0.3 or token_ratio > 0.95:
                adjustment -= 0.1
        if selection.max_files:
            file_ratio = selection.total_files / selection.max_files
            if 0.3 <= file_ratio <= 0.8:
                adjustment += 0.05
        if selection.selection_score > 0.8:
            adjustment += 0.1
        elif selection.selection_score < 0.4:
            adjustment -= 0.15
        return max(0.0, min(1.0, profile.avg_quality + adjustment))
