"""Contextor schema definitions.

All Pydantic v2 models shared by the scorer, optimizer, cache and
adaptive manager.
"""

from contextor.schemas.kinds import (
    FileKind,
    InclusionReason,
    SelectionStrategy,
    TaskType,
)
from contextor.schemas.graph import (
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
)
from contextor.schemas.files import (
    FileRecord,
    ProjectSnapshot,
    StructureSummary,
)
from contextor.schemas.task import (
    Priority,
    Task,
    TaskScope,
)
from contextor.schemas.selection import (
    CacheKey,
    ContextConstraints,
    ScoredFile,
    ScoringFactors,
    SelectedContext,
    SelectedFile,
)
from contextor.schemas.config import (
    AdaptiveConfig,
    CacheConfig,
    EngineConfig,
    OptimizerConfig,
    ScorerConfig,
    ScoringWeights,
)
from contextor.schemas.feedback import (
    ContextFeedback,
    FeedbackAnalysis,
    FileTally,
    QualityPoint,
    TaskProfile,
)

__all__ = [
    "AdaptiveConfig",
    "CacheConfig",
    "CacheKey",
    "ContextConstraints",
    "ContextFeedback",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyNode",
    "EngineConfig",
    "FeedbackAnalysis",
    "FileKind",
    "FileRecord",
    "FileTally",
    "InclusionReason",
    "OptimizerConfig",
    "Priority",
    "ProjectSnapshot",
    "QualityPoint",
    "ScoredFile",
    "ScorerConfig",
    "ScoringFactors",
    "ScoringWeights",
    "SelectedContext",
    "SelectedFile",
    "SelectionStrategy",
    "StructureSummary",
    "Task",
    "TaskProfile",
    "TaskScope",
    "TaskType",
]
