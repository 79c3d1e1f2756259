"""Task descriptor schemas."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contextor import paths
from contextor.schemas.kinds import TaskType


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskScope(StrEnum):
    FILE = "file"
    MODULE = "module"
    PROJECT = "project"
    SYSTEM = "system"


class Task(BaseModel):
    """A coding task that a selection is made for.

    ``keywords`` overrides keyword extraction from the description when
    given. ``must_include`` lists paths that are always selected,
    regardless of score or budget.
    """

    model_config = ConfigDict(frozen=True)

    type: TaskType = Field(default=TaskType.GENERAL, description="Task type tag")
    description: str = Field(default="", description="Free-text task description")
    keywords: list[str] = Field(
        default_factory=list, description="Explicit keywords (optional)"
    )
    must_include: list[str] = Field(
        default_factory=list, description="Paths that must be selected"
    )
    priority: Priority = Field(default=Priority.MEDIUM)
    scope: TaskScope = Field(default=TaskScope.MODULE)

    @field_validator("keywords")
    @classmethod
    def _clean_keywords(cls, value: list[str]) -> list[str]:
        return [k.strip().lower() for k in value if k.strip()]

    @field_validator("must_include")
    @classmethod
    def _clean_paths(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for item in value:
            normalized = paths.normalize(item.strip())
            if normalized and normalized not in cleaned:
                cleaned.append(normalized)
        return cleaned

    def requires(self, path: str) -> bool:
        """True when *path* matches an entry of ``must_include``.

        An entry matches the exact path or a path ending in ``/<entry>``.
        """
        normalized = paths.normalize(path)
        return any(
            normalized == item or normalized.endswith("/" + item)
            for item in self.must_include
        )
