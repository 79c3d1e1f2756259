"""Outcome feedback, learned per-task-type profiles and trend reports."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from contextor.schemas.files import _as_utc
from contextor.schemas.kinds import SelectionStrategy, TaskType
from contextor.schemas.selection import SelectedContext
from contextor.schemas.task import Task


class ContextFeedback(BaseModel):
    """What happened after a selection was handed to the model."""

    task: Task
    selection: SelectedContext
    success: bool = Field(description="Whether the task was completed")
    quality_score: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Reviewer-assigned completion quality"
    )
    tokens_used: int = Field(default=0, ge=0, description="Tokens actually consumed")
    missing_files: list[str] = Field(
        default_factory=list, description="Files the model needed but did not get"
    )
    unnecessary_files: list[str] = Field(
        default_factory=list, description="Selected files the model never used"
    )
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("recorded_at")
    @classmethod
    def _aware_recorded(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @classmethod
    def from_accessed_files(
        cls,
        task: Task,
        selection: SelectedContext,
        accessed: Iterable[str],
        **fields: Any,
    ) -> ContextFeedback:
        """Build feedback from the files a run actually touched.

        Accessed files outside the selection are missing; selected files
        never accessed are unnecessary. Both lists keep first-seen order.
        """
        accessed = list(dict.fromkeys(accessed))
        selected = selection.paths
        chosen = set(selected)
        touched = set(accessed)
        return cls(
            task=task,
            selection=selection,
            missing_files=[p for p in accessed if p not in chosen],
            unnecessary_files=[p for p in selected if p not in touched],
            **fields,
        )


class TaskProfile(BaseModel):
    """Running averages learned from feedback for one task type."""

    task_type: TaskType
    sample_count: int = 0
    avg_quality: float = 0.0
    success_rate: float = 0.0
    optimal_budget: int = 0
    preferred_strategy: SelectionStrategy | None = None
    typical_file_count: float = 0.0
    updated_at: datetime | None = None


class FileTally(BaseModel):
    """How often one path was reported by feedback."""

    path: str
    count: int


class QualityPoint(BaseModel):
    recorded_at: datetime
    quality: float
    strategy: SelectionStrategy
    task_type: TaskType


class FeedbackAnalysis(BaseModel):
    """Aggregate view over recorded outcomes."""

    total_samples: int = 0
    avg_quality: float = 0.0
    success_rate: float = 0.0
    strategy_effectiveness: dict[SelectionStrategy, float] = Field(
        default_factory=dict, description="Mean quality per selection strategy"
    )
    top_missing_files: list[FileTally] = Field(default_factory=list)
    top_unnecessary_files: list[FileTally] = Field(default_factory=list)
    quality_trend: list[QualityPoint] = Field(
        default_factory=list, description="Outcomes in recording order"
    )
    recommendations: list[str] = Field(default_factory=list)
