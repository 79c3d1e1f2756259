"""Scoring and selection schemas.

Defines the per-file scoring breakdown, the constraints a selection is
packed under, the engine's sole output artifact (SelectedContext) and the
key selections are cached by.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from contextor.errors import ConfigurationError
from contextor.schemas.files import FileRecord
from contextor.schemas.kinds import (
    FileKind,
    InclusionReason,
    SelectionStrategy,
    TaskType,
)


class ScoringFactors(BaseModel):
    """Per-factor breakdown of a relevance score, each in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    keyword_match: float = Field(default=0.0, ge=0.0, le=1.0)
    path_relevance: float = Field(default=0.0, ge=0.0, le=1.0)
    file_type: float = Field(default=0.0, ge=0.0, le=1.0)
    recency: float = Field(default=0.0, ge=0.0, le=1.0)
    size: float = Field(default=0.0, ge=0.0, le=1.0)
    dependency: float = Field(default=0.0, ge=0.0, le=1.0)
    task_type: float = Field(default=0.0, ge=0.0, le=1.0)
    language: float = Field(default=0.0, ge=0.0, le=1.0)


class ScoredFile(BaseModel):
    """A file with its aggregate score and the factors behind it."""

    model_config = ConfigDict(frozen=True)

    file: FileRecord
    score: float = Field(ge=0.0, le=1.0)
    factors: ScoringFactors = Field(default_factory=ScoringFactors)


# Fields a per-task override may not touch
_NON_OVERRIDABLE = {"overrides"}


class ContextConstraints(BaseModel):
    """Budget and filtering limits for one selection.

    ``overrides`` maps a task type to a partial set of fields applied by
    ``for_task()``; e.g. ``{"debug": {"strategy": "dependency"}}``.
    """

    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=8000, description="Hard token budget")
    max_files: int = Field(default=50, description="Maximum number of files")
    strategy: SelectionStrategy = Field(default=SelectionStrategy.BALANCED)
    min_score: float = Field(default=0.0, description="Minimum relevance score")
    include_tests: bool = Field(default=True)
    include_docs: bool = Field(default=True)
    preferred_kinds: list[FileKind] = Field(
        default_factory=list, description="Restrict candidates to these kinds (empty = all)"
    )
    excluded_patterns: list[str] = Field(
        default_factory=list, description="fnmatch globs excluded from selection"
    )
    freshness_bias: float = Field(default=0.3, description="Weight of freshness in [0, 1]")
    dependency_depth: int = Field(default=1, description="Hops followed by expansion")
    allow_empty: bool = Field(
        default=True,
        description="Return an empty selection instead of raising BudgetInfeasible",
    )
    overrides: dict[TaskType, dict[str, Any]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_limits(self) -> ContextConstraints:
        if self.max_tokens <= 0:
            raise ConfigurationError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.max_files <= 0:
            raise ConfigurationError(f"max_files must be positive, got {self.max_files}")
        if not 0.0 <= self.min_score <= 1.0:
            raise ConfigurationError(f"min_score must be in [0, 1], got {self.min_score}")
        if not 0.0 <= self.freshness_bias <= 1.0:
            raise ConfigurationError(
                f"freshness_bias must be in [0, 1], got {self.freshness_bias}"
            )
        if self.dependency_depth < 1:
            raise ConfigurationError(
                f"dependency_depth must be at least 1, got {self.dependency_depth}"
            )
        for task_type, fields in self.overrides.items():
            bad = set(fields) - (set(type(self).model_fields) - _NON_OVERRIDABLE)
            if bad:
                raise ConfigurationError(
                    f"Unknown constraint override(s) for {task_type.value}: {sorted(bad)}"
                )
        return self

    def for_task(self, task_type: TaskType) -> ContextConstraints:
        """Return these constraints with the task type's overrides applied."""
        fields = self.overrides.get(task_type)
        if not fields:
            return self
        data = self.model_dump()
        data.update(fields)
        data["overrides"] = {}
        return ContextConstraints.model_validate(data)

    def with_changes(self, **changes: Any) -> ContextConstraints:
        """Validated copy with *changes* applied."""
        data = self.model_dump()
        data.update(changes)
        return ContextConstraints.model_validate(data)


class SelectedFile(BaseModel):
    """A file chosen for the context, with its score and inclusion reason."""

    model_config = ConfigDict(frozen=True)

    file: FileRecord
    score: float = Field(ge=0.0, le=1.0)
    reason: InclusionReason = Field(default=InclusionReason.RANKED)


class SelectedContext(BaseModel):
    """The engine's output: an ordered, budgeted file selection.

    Immutable once returned. ``adaptation_reasons`` explains every file
    added transitively and every parameter changed along the way.
    """

    model_config = ConfigDict(frozen=True)

    files: list[SelectedFile] = Field(default_factory=list)
    total_tokens: int = Field(default=0, ge=0)
    total_files: int = Field(default=0, ge=0)
    strategy: SelectionStrategy = Field(default=SelectionStrategy.BALANCED)
    max_tokens: int = Field(default=0, ge=0, description="Token budget used")
    max_files: int = Field(default=0, ge=0, description="File cap used")
    selection_score: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Mean score of the selected files"
    )
    adaptation_reasons: list[str] = Field(default_factory=list)
    cached: bool = Field(default=False, description="Served from the selection cache")

    @property
    def records(self) -> list[FileRecord]:
        return [f.file for f in self.files]

    @property
    def paths(self) -> list[str]:
        return [f.file.path for f in self.files]

    @property
    def tokens_per_file(self) -> float:
        if not self.files:
            return 0.0
        return self.total_tokens / len(self.files)

    @property
    def is_empty(self) -> bool:
        return not self.files


class CacheKey(BaseModel):
    """Identity of a memoized selection."""

    model_config = ConfigDict(frozen=True)

    project: str = Field(description="Project fingerprint")
    task: str = Field(description="Task fingerprint")
    strategy: SelectionStrategy
    budget: int = Field(description="Token budget")
    max_files: int = Field(default=0, description="File cap")
    options: str = Field(default="", description="Fingerprint of the remaining filters")
    captured_at: str = Field(
        default="", description="Snapshot capture time, the reference for recency"
    )
