"""Project snapshot schemas.

Defines the immutable file records and project snapshots produced by the
analyzer collaborator and consumed, read-only, by the selection engine.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from contextor import paths
from contextor.schemas.graph import DependencyGraph
from contextor.schemas.kinds import FileKind

# Token total above which the summary recommends aggressive optimization
_LARGE_PROJECT_TOKENS = 100_000

# Minimum dependents for a file to be listed as a core file
_CORE_MIN_DEPENDENTS = 2


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class FileRecord(BaseModel):
    """A single analyzed file. Immutable once produced for a snapshot."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(description="Project-relative path, unique within a snapshot")
    size_bytes: int = Field(default=0, ge=0, description="File size in bytes")
    token_count: int = Field(default=0, ge=0, description="Estimated model tokens")
    modified_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Last modification time",
    )
    kind: FileKind = Field(default=FileKind.UNKNOWN, description="Role of the file")
    language: str = Field(default="unknown", description="Language tag")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form analyzer output (imports, references, ...)",
    )

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        cleaned = paths.normalize(value)
        if not cleaned:
            raise ValueError("File path must not be empty")
        return cleaned

    @field_validator("modified_at")
    @classmethod
    def _aware_modified(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @classmethod
    def from_path(cls, path: str, **fields: Any) -> FileRecord:
        """Build a record, inferring kind and language from *path* unless given."""
        fields.setdefault("kind", paths.classify_kind(path))
        fields.setdefault("language", paths.detect_language(path))
        return cls(path=path, **fields)

    @property
    def name(self) -> str:
        return paths.basename(self.path)


class StructureSummary(BaseModel):
    """Structural overview derived from a snapshot's files and graph."""

    model_config = ConfigDict(frozen=True)

    entry_points: list[str] = Field(default_factory=list)
    test_files: list[str] = Field(default_factory=list)
    config_files: list[str] = Field(default_factory=list)
    doc_files: list[str] = Field(default_factory=list)
    core_files: list[str] = Field(
        default_factory=list,
        description="Files with several dependents in the graph",
    )
    recommendations: list[str] = Field(default_factory=list)


class ProjectSnapshot(BaseModel):
    """Files of one project at one point in time.

    Owned by the engine only for the duration of a selection call; the
    collaborator decides when to produce a new one.
    """

    model_config = ConfigDict(frozen=True)

    root: str = Field(description="Project root identifier")
    files: list[FileRecord] = Field(default_factory=list)
    graph: DependencyGraph | None = Field(
        default=None, description="Dependency graph (built on demand when absent)"
    )
    captured_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Reference time for recency scoring",
    )

    @field_validator("captured_at")
    @classmethod
    def _aware_captured(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _unique_paths(self) -> ProjectSnapshot:
        seen: set[str] = set()
        for record in self.files:
            if record.path in seen:
                raise ValueError(f"Duplicate file path in snapshot: {record.path}")
            seen.add(record.path)
        if self.graph is not None:
            unknown = set(self.graph.nodes) - seen
            if unknown:
                raise ValueError(
                    f"Graph references files outside the snapshot: {sorted(unknown)[:5]}"
                )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_tokens(self) -> int:
        return sum(f.token_count for f in self.files)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def languages(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for f in self.files:
            counts[f.language] = counts.get(f.language, 0) + 1
        return counts

    @property
    def summary(self) -> StructureSummary:
        """Entry points, tests, configs, docs and core files."""
        entry_points: list[str] = []
        test_files: list[str] = []
        config_files: list[str] = []
        doc_files: list[str] = []
        for f in self.files:
            if f.kind == FileKind.TEST:
                test_files.append(f.path)
            elif f.kind == FileKind.CONFIG:
                config_files.append(f.path)
            elif f.kind == FileKind.DOC:
                doc_files.append(f.path)
            elif paths.is_entry_point(f.path):
                entry_points.append(f.path)

        core_files: list[str] = []
        if self.graph is not None:
            core_files = sorted(
                (
                    path for path, node in self.graph.nodes.items()
                    if len(node.dependents) >= _CORE_MIN_DEPENDENTS
                ),
                key=lambda p: (-len(self.graph.nodes[p].dependents), p),
            )

        recommendations: list[str] = []
        if self.total_tokens > _LARGE_PROJECT_TOKENS:
            recommendations.append(
                "Large codebase detected - context optimization recommended"
            )
        if not test_files:
            recommendations.append("No test files detected")

        return StructureSummary(
            entry_points=entry_points,
            test_files=test_files,
            config_files=config_files,
            doc_files=doc_files,
            core_files=core_files,
            recommendations=recommendations,
        )

    def get(self, path: str) -> FileRecord | None:
        normalized = paths.normalize(path)
        for f in self.files:
            if f.path == normalized:
                return f
        return None
