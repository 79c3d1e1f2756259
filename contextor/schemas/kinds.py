"""Closed vocabularies shared across the engine."""

from __future__ import annotations

from enum import StrEnum


class FileKind(StrEnum):
    """Coarse role of a file in its project, assigned by the analyzer."""

    SOURCE = "source"
    TEST = "test"
    CONFIG = "config"
    DOC = "doc"
    UNKNOWN = "unknown"


class TaskType(StrEnum):
    """Kind of coding task a selection is made for."""

    GENERAL = "general"
    DEBUG = "debug"
    REFACTOR = "refactor"
    FEATURE = "feature"
    TEST = "test"
    DOCUMENTATION = "documentation"


class SelectionStrategy(StrEnum):
    """Ordering policy applied while packing files under budget.

    Controls whether the optimizer ranks purely by relevance, favours
    dependency hubs, recent edits, small files, or a blend.
    """

    RELEVANCE = "relevance"
    DEPENDENCY = "dependency"
    FRESHNESS = "freshness"
    COMPACTNESS = "compactness"
    BALANCED = "balanced"


class InclusionReason(StrEnum):
    """Why a file ended up in a selection."""

    RANKED = "ranked"
    MUST_INCLUDE = "must_include"
    DEPENDENCY = "dependency"
