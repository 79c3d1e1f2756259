"""Tests for contextor.schemas — snapshot, task, graph and selection models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from contextor import classify_kind, detect_language
from contextor.errors import ConfigurationError
from contextor.schemas import (
    CacheKey,
    ContextConstraints,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    FileKind,
    FileRecord,
    ProjectSnapshot,
    ScoringWeights,
    SelectedContext,
    SelectedFile,
    SelectionStrategy,
    Task,
    TaskType,
)

_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


# ── Factories ──────────────────────────────────────────────────────


def _make_file(path: str, tokens: int = 100, **overrides) -> FileRecord:
    defaults = {
        "path": path,
        "size_bytes": tokens * 4,
        "token_count": tokens,
        "modified_at": _NOW,
        "kind": FileKind.SOURCE,
        "language": "go",
    }
    defaults.update(overrides)
    return FileRecord(**defaults)


def _make_graph(edges: list[tuple[str, str]], extra: tuple[str, ...] = ()) -> DependencyGraph:
    paths = sorted({p for e in edges for p in e} | set(extra))
    nodes = {
        p: DependencyNode(
            path=p,
            imports=[t for s, t in edges if s == p],
            dependents=[s for s, t in edges if t == p],
        )
        for p in paths
    }
    return DependencyGraph(
        nodes=nodes,
        edges=[DependencyEdge(source=s, target=t) for s, t in edges],
    )


# ── FileRecord ─────────────────────────────────────────────────────


class TestFileRecord:
    def test_path_is_normalized(self):
        record = _make_file("./src\\auth\\login.go")
        assert record.path == "src/auth/login.go"
        assert record.name == "login.go"

    def test_empty_path_rejected(self):
        with pytest.raises(ValidationError):
            _make_file("")

    def test_negative_tokens_rejected(self):
        with pytest.raises(ValidationError):
            _make_file("a.go", tokens=-1)

    def test_naive_timestamp_becomes_utc(self):
        record = _make_file("a.go", modified_at=datetime(2025, 1, 1, 8, 0))
        assert record.modified_at.tzinfo is not None
        assert record.modified_at.utcoffset() == timedelta(0)

    def test_frozen(self):
        record = _make_file("a.go")
        with pytest.raises(ValidationError):
            record.token_count = 5  # type: ignore[misc]

    def test_from_path_infers_kind_and_language(self):
        record = FileRecord.from_path("pkg/auth_test.go", token_count=10)
        assert record.kind == FileKind.TEST
        assert record.language == "go"
        assert FileRecord.from_path("README.md").kind == FileKind.DOC

    def test_from_path_keeps_explicit_fields(self):
        record = FileRecord.from_path("notes.txt", kind=FileKind.SOURCE, language="text")
        assert record.kind == FileKind.SOURCE
        assert record.language == "text"

    def test_path_helpers_are_exported(self):
        assert classify_kind("cmd/server/main.go") == FileKind.SOURCE
        assert detect_language("web/app.tsx") == "typescript"


# ── ProjectSnapshot ────────────────────────────────────────────────


class TestProjectSnapshot:
    def test_derived_totals(self):
        snapshot = ProjectSnapshot(
            root="/repo",
            files=[
                _make_file("a.go", 100),
                _make_file("b.go", 50),
                _make_file("README.md", 20, kind=FileKind.DOC, language="markdown"),
            ],
        )
        assert snapshot.total_tokens == 170
        assert snapshot.languages == {"go": 2, "markdown": 1}

    def test_duplicate_paths_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate file path"):
            ProjectSnapshot(root="/repo", files=[_make_file("a.go"), _make_file("./a.go")])

    def test_graph_must_stay_inside_file_set(self):
        graph = _make_graph([("a.go", "ghost.go")])
        with pytest.raises(ValidationError, match="outside the snapshot"):
            ProjectSnapshot(root="/repo", files=[_make_file("a.go")], graph=graph)

    def test_get(self):
        snapshot = ProjectSnapshot(root="/repo", files=[_make_file("src/a.go")])
        assert snapshot.get("./src/a.go") is not None
        assert snapshot.get("missing.go") is None

    def test_summary(self):
        files = [
            _make_file("main.go"),
            _make_file("core/db.go"),
            _make_file("api/a.go"),
            _make_file("api/b.go"),
            _make_file("core/db_test.go", kind=FileKind.TEST),
            _make_file("config.yaml", kind=FileKind.CONFIG, language="yaml"),
            _make_file("README.md", kind=FileKind.DOC, language="markdown"),
        ]
        graph = _make_graph(
            [("api/a.go", "core/db.go"), ("api/b.go", "core/db.go")],
            extra=tuple(f.path for f in files),
        )
        summary = ProjectSnapshot(root="/repo", files=files, graph=graph).summary

        assert summary.entry_points == ["main.go"]
        assert summary.test_files == ["core/db_test.go"]
        assert summary.config_files == ["config.yaml"]
        assert summary.doc_files == ["README.md"]
        assert summary.core_files == ["core/db.go"]
        assert summary.recommendations == []

    def test_summary_recommendations(self):
        snapshot = ProjectSnapshot(root="/repo", files=[_make_file("big.go", 150_000)])
        recs = snapshot.summary.recommendations
        assert any("Large codebase" in r for r in recs)
        assert "No test files detected" in recs

    def test_json_round_trip_keeps_files(self):
        snapshot = ProjectSnapshot(root="/repo", files=[_make_file("a.go")], captured_at=_NOW)
        restored = ProjectSnapshot.model_validate_json(snapshot.model_dump_json())
        assert restored.files == snapshot.files
        assert restored.captured_at == _NOW


# ── Task ───────────────────────────────────────────────────────────


class TestTask:
    def test_keywords_cleaned(self):
        task = Task(keywords=["  Auth ", "", "JWT"])
        assert task.keywords == ["auth", "jwt"]

    def test_must_include_normalized_and_deduplicated(self):
        task = Task(must_include=["./README.md", "README.md", "src\\a.go"])
        assert task.must_include == ["README.md", "src/a.go"]

    def test_requires_exact_and_suffix(self):
        task = Task(must_include=["auth/login.go"])
        assert task.requires("auth/login.go")
        assert task.requires("internal/auth/login.go")
        assert not task.requires("internal/myauth/login.go")
        assert not task.requires("auth/login.go.bak")

    def test_defaults(self):
        task = Task()
        assert task.type == TaskType.GENERAL
        assert task.must_include == []


# ── DependencyGraph ────────────────────────────────────────────────


class TestDependencyGraph:
    def test_edge_to_missing_node_rejected(self):
        with pytest.raises(ValidationError, match="missing node"):
            DependencyGraph(
                nodes={"a.go": DependencyNode(path="a.go")},
                edges=[DependencyEdge(source="a.go", target="b.go")],
            )

    def test_strength_bounds(self):
        with pytest.raises(ValidationError):
            DependencyEdge(source="a", target="b", strength=1.5)

    def test_centrality(self):
        graph = _make_graph([("a.go", "b.go"), ("c.go", "b.go")])
        assert graph.centrality("b.go") == pytest.approx(4 / 6)
        assert graph.centrality("a.go") == pytest.approx(1 / 6)
        assert graph.centrality("unknown.go") == 0.0

    def test_single_node_centrality_is_neutral(self):
        graph = _make_graph([], extra=("a.go",))
        assert graph.centrality("a.go") == 0.5

    def test_transitive_dependencies(self):
        graph = _make_graph([("a.go", "b.go"), ("b.go", "c.go"), ("c.go", "a.go")])
        assert graph.transitive_dependencies("a.go", depth=1) == ["b.go"]
        assert graph.transitive_dependencies("a.go", depth=2) == ["b.go", "c.go"]
        # Cycles never revisit the start
        assert graph.transitive_dependencies("a.go", depth=5) == ["b.go", "c.go"]

    def test_edge_strengths_keep_strongest(self):
        graph = DependencyGraph(
            nodes={p: DependencyNode(path=p) for p in ("a", "b")},
            edges=[
                DependencyEdge(source="a", target="b", type="package", strength=0.5),
                DependencyEdge(source="a", target="b", type="import", strength=1.0),
            ],
        )
        assert graph.edge_strengths() == {("a", "b"): 1.0}


# ── Constraints and weights ────────────────────────────────────────


class TestContextConstraints:
    def test_defaults(self):
        constraints = ContextConstraints()
        assert constraints.max_tokens == 8000
        assert constraints.strategy == SelectionStrategy.BALANCED
        assert constraints.allow_empty is True

    @pytest.mark.parametrize(
        "field,value",
        [
            ("max_tokens", 0),
            ("max_files", -1),
            ("min_score", 1.5),
            ("freshness_bias", -0.1),
            ("dependency_depth", 0),
        ],
    )
    def test_invalid_limits_raise_configuration_error(self, field, value):
        with pytest.raises(ConfigurationError):
            ContextConstraints(**{field: value})

    def test_for_task_applies_override(self):
        constraints = ContextConstraints(
            overrides={TaskType.DEBUG: {"strategy": "dependency", "max_files": 10}},
        )
        debug = constraints.for_task(TaskType.DEBUG)
        assert debug.strategy == SelectionStrategy.DEPENDENCY
        assert debug.max_files == 10
        assert constraints.for_task(TaskType.FEATURE) is constraints

    def test_unknown_override_field_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown constraint override"):
            ContextConstraints(overrides={TaskType.DEBUG: {"budget": 10}})

    def test_with_changes_validates(self):
        constraints = ContextConstraints()
        assert constraints.with_changes(max_tokens=100).max_tokens == 100
        with pytest.raises(ConfigurationError):
            constraints.with_changes(max_tokens=0)


class TestScoringWeights:
    def test_defaults_sum_to_one(self):
        weights = ScoringWeights()
        assert sum(weights.model_dump().values()) == pytest.approx(1.0)

    def test_bad_sum_rejected(self):
        with pytest.raises(ConfigurationError, match="sum to 1.0"):
            ScoringWeights(keyword_match=0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ConfigurationError, match="non-negative"):
            ScoringWeights(keyword_match=-0.25, path_relevance=0.65)

    def test_small_float_error_tolerated(self):
        ScoringWeights(keyword_match=0.25 + 1e-9)


# ── Selection outputs ──────────────────────────────────────────────


class TestSelectedContext:
    def test_properties(self):
        files = [
            SelectedFile(file=_make_file("a.go", 100), score=0.8),
            SelectedFile(file=_make_file("b.go", 300), score=0.6),
        ]
        selection = SelectedContext(files=files, total_tokens=400, total_files=2)
        assert selection.paths == ["a.go", "b.go"]
        assert selection.tokens_per_file == 200
        assert [r.path for r in selection.records] == ["a.go", "b.go"]
        assert not selection.is_empty

    def test_empty(self):
        selection = SelectedContext()
        assert selection.is_empty
        assert selection.tokens_per_file == 0.0

    def test_cache_key_is_hashable(self):
        a = CacheKey(project="p", task="t", strategy=SelectionStrategy.RELEVANCE, budget=10)
        b = CacheKey(project="p", task="t", strategy=SelectionStrategy.RELEVANCE, budget=10)
        c = CacheKey(project="p", task="t", strategy=SelectionStrategy.RELEVANCE, budget=20)
        assert a == b
        assert len({a, b, c}) == 2
