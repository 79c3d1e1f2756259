"""Engine configuration schemas.

Loaded from defaults.toml and validated once at construction time. Any
invalid value raises ConfigurationError; nothing is re-checked at call
time.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, Field, model_validator

from contextor.errors import ConfigurationError
from contextor.schemas.kinds import FileKind, SelectionStrategy, TaskType

_WEIGHT_TOLERANCE = 1e-6

_DEFAULT_STOP_WORDS = [
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "should", "could", "may", "might", "must", "can", "this", "that",
    "these", "those", "i", "you", "he", "she", "it", "we", "they",
]


class ScoringWeights(BaseModel):
    """Weights of the eight relevance factors. Must sum to 1.0."""

    keyword_match: float = 0.25
    path_relevance: float = 0.15
    file_type: float = 0.20
    recency: float = 0.10
    size: float = 0.05
    dependency: float = 0.10
    task_type: float = 0.10
    language: float = 0.05

    @model_validator(mode="after")
    def _check_sum(self) -> ScoringWeights:
        values = self.model_dump()
        negative = [name for name, v in values.items() if v < 0]
        if negative:
            raise ConfigurationError(f"Scoring weights must be non-negative: {negative}")
        total = sum(values.values())
        if not math.isclose(total, 1.0, abs_tol=_WEIGHT_TOLERANCE):
            raise ConfigurationError(f"Scoring weights must sum to 1.0, got {total:.6f}")
        return self


class ScorerConfig(BaseModel):
    """Relevance scorer tuning."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    recency_half_life_hours: float = Field(
        default=7 * 24.0, description="Age at which the recency factor halves"
    )
    optimal_file_tokens: int = Field(default=500, description="Size factor peak")
    size_penalty: float = Field(
        default=0.5, description="Slope of the penalty beyond the optimal size"
    )
    size_floor: float = Field(
        default=0.3, description="Lowest size factor an oversized file can get"
    )
    centrality_top_fraction: float = Field(
        default=0.25,
        description="Share of phase-one top scorers used for dependency centrality",
    )
    stop_words: list[str] = Field(default_factory=lambda: list(_DEFAULT_STOP_WORDS))
    task_type_boosts: dict[TaskType, dict[FileKind, float]] = Field(
        default_factory=dict,
        description="Per task type, file kind → task-type factor override",
    )

    @model_validator(mode="after")
    def _check_ranges(self) -> ScorerConfig:
        if self.recency_half_life_hours <= 0:
            raise ConfigurationError("recency_half_life_hours must be positive")
        if self.optimal_file_tokens <= 0:
            raise ConfigurationError("optimal_file_tokens must be positive")
        if self.size_penalty < 0:
            raise ConfigurationError("size_penalty must be non-negative")
        if not 0.0 <= self.size_floor <= 1.0:
            raise ConfigurationError("size_floor must be in [0, 1]")
        if not 0.0 < self.centrality_top_fraction <= 1.0:
            raise ConfigurationError("centrality_top_fraction must be in (0, 1]")
        for task_type, boosts in self.task_type_boosts.items():
            for kind, value in boosts.items():
                if not 0.0 <= value <= 1.0:
                    raise ConfigurationError(
                        f"task_type_boosts[{task_type.value}][{kind.value}] must be in [0, 1]"
                    )
        return self


class OptimizerConfig(BaseModel):
    """Defaults applied when a caller passes no constraints."""

    default_strategy: SelectionStrategy = SelectionStrategy.BALANCED
    default_max_tokens: int = 8000
    default_max_files: int = 50
    freshness_bias: float = 0.3
    dependency_depth: int = 1

    @model_validator(mode="after")
    def _check_defaults(self) -> OptimizerConfig:
        if self.default_max_tokens <= 0:
            raise ConfigurationError("default_max_tokens must be positive")
        if self.default_max_files <= 0:
            raise ConfigurationError("default_max_files must be positive")
        if not 0.0 <= self.freshness_bias <= 1.0:
            raise ConfigurationError("freshness_bias must be in [0, 1]")
        if self.dependency_depth < 1:
            raise ConfigurationError("dependency_depth must be at least 1")
        return self


class CacheConfig(BaseModel):
    """Selection cache bounds."""

    enabled: bool = True
    max_entries: int = 256
    ttl_seconds: float = Field(default=0.0, description="0 disables expiry")

    @model_validator(mode="after")
    def _check_bounds(self) -> CacheConfig:
        if self.max_entries <= 0:
            raise ConfigurationError("max_entries must be positive")
        if self.ttl_seconds < 0:
            raise ConfigurationError("ttl_seconds must be non-negative")
        return self


class AdaptiveConfig(BaseModel):
    """Retry thresholds and learning rates for adaptive selection."""

    max_attempts: int = Field(default=3, description="Upper bound on selections per adapt()")
    underuse_ratio: float = Field(
        default=0.5, description="Token usage below ratio × target counts as over-conservative"
    )
    budget_growth: float = Field(default=1.25, description="Budget multiplier per loosening")
    max_budget_ratio: float = Field(
        default=1.5, description="Loosened budget never exceeds ratio × target"
    )
    file_growth: float = Field(default=1.5, description="File-cap multiplier when the cap is hit")
    quality_threshold: float = Field(
        default=0.7, description="Average quality below this loosens the budget"
    )
    min_samples: int = Field(default=5, description="Outcomes needed before a profile is trusted")
    learning_rate: float = Field(default=0.1, description="EMA weight of the newest outcome")
    history_size: int = Field(
        default=500, description="Recorded outcomes kept for reuse and trend analysis"
    )
    reuse_similarity: float = Field(
        default=0.7, description="Minimum task similarity for reusing a past selection"
    )
    insight_min_samples: int = Field(
        default=10, description="Outcomes needed before trend analysis is reliable"
    )

    @model_validator(mode="after")
    def _check_ratios(self) -> AdaptiveConfig:
        if not 1 <= self.max_attempts <= 10:
            raise ConfigurationError("max_attempts must be between 1 and 10")
        if not 0.0 < self.underuse_ratio <= 1.0:
            raise ConfigurationError("underuse_ratio must be in (0, 1]")
        if self.budget_growth <= 1.0:
            raise ConfigurationError("budget_growth must be greater than 1.0")
        if self.max_budget_ratio < 1.0:
            raise ConfigurationError("max_budget_ratio must be at least 1.0")
        if self.file_growth <= 1.0:
            raise ConfigurationError("file_growth must be greater than 1.0")
        if not 0.0 <= self.quality_threshold <= 1.0:
            raise ConfigurationError("quality_threshold must be in [0, 1]")
        if self.min_samples < 1:
            raise ConfigurationError("min_samples must be at least 1")
        if not 0.0 < self.learning_rate <= 1.0:
            raise ConfigurationError("learning_rate must be in (0, 1]")
        if self.history_size < 1:
            raise ConfigurationError("history_size must be at least 1")
        if not 0.0 < self.reuse_similarity <= 1.0:
            raise ConfigurationError("reuse_similarity must be in (0, 1]")
        if self.insight_min_samples < 1:
            raise ConfigurationError("insight_min_samples must be at least 1")
        return self


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    scorer: ScorerConfig = Field(default_factory=ScorerConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    adaptive: AdaptiveConfig = Field(default_factory=AdaptiveConfig)
