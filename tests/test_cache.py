"""Tests for contextor.context.cache and engine-level memoization."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from contextor.context.cache import ContextCache
from contextor.context.fingerprint import cache_key, project_fingerprint, task_fingerprint
from contextor.engine import ContextEngine
from contextor.schemas import (
    CacheConfig,
    CacheKey,
    ContextConstraints,
    FileKind,
    FileRecord,
    ProjectSnapshot,
    SelectedContext,
    SelectionStrategy,
    Task,
    TaskType,
)

_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


# ── Factories ──────────────────────────────────────────────────────


def _make_key(task: str = "t", project: str = "p", budget: int = 1000) -> CacheKey:
    return CacheKey(
        project=project, task=task, strategy=SelectionStrategy.BALANCED, budget=budget
    )


def _make_snapshot(tokens: int = 100) -> ProjectSnapshot:
    return ProjectSnapshot(
        root="/repo",
        files=[
            FileRecord(
                path="auth.go", token_count=tokens, modified_at=_NOW,
                kind=FileKind.SOURCE, language="go",
            ),
            FileRecord(
                path="README.md", token_count=50, modified_at=_NOW,
                kind=FileKind.DOC, language="markdown",
            ),
        ],
        captured_at=_NOW,
    )


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ── ContextCache ───────────────────────────────────────────────────


class TestContextCache:
    def test_round_trip(self):
        cache = ContextCache()
        value = SelectedContext(total_tokens=10)
        cache.put(_make_key(), value)
        assert cache.get(_make_key()) is value
        assert _make_key() in cache
        assert len(cache) == 1

    def test_miss(self):
        cache = ContextCache()
        assert cache.get(_make_key()) is None
        assert cache.stats().misses == 1

    def test_lru_eviction(self):
        cache = ContextCache(CacheConfig(max_entries=2))
        cache.put(_make_key("a"), SelectedContext())
        cache.put(_make_key("b"), SelectedContext())
        cache.get(_make_key("a"))  # a becomes most recent
        cache.put(_make_key("c"), SelectedContext())

        assert _make_key("a") in cache
        assert _make_key("b") not in cache
        assert _make_key("c") in cache
        assert cache.stats().evictions == 1

    def test_overwrite_does_not_grow(self):
        cache = ContextCache(CacheConfig(max_entries=2))
        cache.put(_make_key(), SelectedContext(total_tokens=1))
        cache.put(_make_key(), SelectedContext(total_tokens=2))
        assert len(cache) == 1
        assert cache.get(_make_key()).total_tokens == 2

    def test_ttl_expiry(self):
        clock = _FakeClock()
        cache = ContextCache(CacheConfig(ttl_seconds=60), clock=clock)
        cache.put(_make_key(), SelectedContext())
        clock.now = 59
        assert cache.get(_make_key()) is not None
        clock.now = 61
        assert cache.get(_make_key()) is None
        assert _make_key() not in cache

    def test_no_ttl_by_default(self):
        clock = _FakeClock()
        cache = ContextCache(clock=clock)
        cache.put(_make_key(), SelectedContext())
        clock.now = 10**9
        assert cache.get(_make_key()) is not None

    def test_invalidate(self):
        cache = ContextCache()
        cache.put(_make_key(), SelectedContext())
        assert cache.invalidate(_make_key()) is True
        assert cache.invalidate(_make_key()) is False

    def test_invalidate_project(self):
        cache = ContextCache()
        cache.put(_make_key("a", project="p1"), SelectedContext())
        cache.put(_make_key("b", project="p1"), SelectedContext())
        cache.put(_make_key("c", project="p2"), SelectedContext())
        assert cache.invalidate_project("p1") == 2
        assert cache.stats().entries_by_project == {"p2": 1}

    def test_clear(self):
        cache = ContextCache()
        cache.put(_make_key("a"), SelectedContext())
        cache.put(_make_key("b"), SelectedContext())
        cache.clear()
        assert len(cache) == 0
        assert cache.stats().invalidations == 2

    def test_stats_and_hit_ratio(self):
        cache = ContextCache(CacheConfig(max_entries=8))
        cache.put(_make_key(), SelectedContext())
        cache.get(_make_key())
        cache.get(_make_key())
        cache.get(_make_key("other"))
        stats = cache.stats()
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_ratio == 2 / 3
        assert stats.size == 1
        assert stats.max_entries == 8

    def test_stats_is_a_snapshot(self):
        cache = ContextCache()
        stats = cache.stats()
        cache.get(_make_key())
        assert stats.misses == 0

    def test_concurrent_access(self):
        cache = ContextCache(CacheConfig(max_entries=50))

        def work(i: int) -> None:
            key = _make_key(str(i % 100))
            cache.put(key, SelectedContext(total_tokens=i))
            cache.get(key)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(work, range(1000)))

        stats = cache.stats()
        assert len(cache) <= 50
        assert stats.hits + stats.misses == 1000


# ── Fingerprints ───────────────────────────────────────────────────


class TestFingerprints:
    def test_project_fingerprint_ignores_file_order(self):
        snapshot = _make_snapshot()
        reordered = ProjectSnapshot(
            root="/repo", files=list(reversed(snapshot.files)), captured_at=_NOW
        )
        assert project_fingerprint(snapshot) == project_fingerprint(reordered)

    def test_project_fingerprint_tracks_content(self):
        assert project_fingerprint(_make_snapshot(100)) != project_fingerprint(_make_snapshot(101))

    def test_task_fingerprint_ignores_keyword_order(self):
        a = Task(keywords=["auth", "jwt"])
        b = Task(keywords=["jwt", "auth"])
        assert task_fingerprint(a) == task_fingerprint(b)
        assert task_fingerprint(a) != task_fingerprint(Task(keywords=["auth"]))

    def test_filters_change_the_key(self):
        snapshot, task = _make_snapshot(), Task()
        base = cache_key(snapshot, task, ContextConstraints())
        filtered = cache_key(snapshot, task, ContextConstraints(include_docs=False))
        assert base != filtered
        assert base.project == filtered.project

    def test_capture_time_changes_the_key(self):
        snapshot, task = _make_snapshot(), Task()
        later = ProjectSnapshot(
            root="/repo", files=snapshot.files, captured_at=_NOW + timedelta(hours=1)
        )
        first = cache_key(snapshot, task, ContextConstraints())
        second = cache_key(later, task, ContextConstraints())
        assert first != second
        assert first.project == second.project


# ── Engine memoization ─────────────────────────────────────────────


class TestEngineCaching:
    def test_second_call_is_served_from_cache(self):
        engine = ContextEngine()
        snapshot, task = _make_snapshot(), Task(type=TaskType.FEATURE, keywords=["auth"])

        with patch.object(
            engine.scorer, "score_all", wraps=engine.scorer.score_all
        ) as spy:
            first = engine.select(snapshot, task)
            second = engine.select(snapshot, task)

        assert spy.call_count == 1
        assert first.cached is False
        assert second.cached is True
        assert second.paths == first.paths
        assert engine.cache_stats().hits == 1

    def test_different_budget_misses(self):
        engine = ContextEngine()
        snapshot, task = _make_snapshot(), Task()
        engine.select(snapshot, task, ContextConstraints(max_tokens=100))
        result = engine.select(snapshot, task, ContextConstraints(max_tokens=200))
        assert result.cached is False
        assert len(engine.cache) == 2

    def test_changed_snapshot_misses(self):
        engine = ContextEngine()
        engine.select(_make_snapshot(100), Task())
        assert engine.select(_make_snapshot(120), Task()).cached is False

    def test_later_capture_of_same_files_misses(self):
        engine = ContextEngine()
        files = [
            FileRecord(
                path="a.md", token_count=80, modified_at=_NOW - timedelta(hours=1),
                kind=FileKind.DOC, language="markdown",
            ),
            FileRecord(
                path="b.py", token_count=80, modified_at=_NOW - timedelta(days=10),
                kind=FileKind.SOURCE, language="python",
            ),
        ]
        early = ProjectSnapshot(root="/repo", files=files, captured_at=_NOW)
        late = ProjectSnapshot(
            root="/repo", files=files, captured_at=_NOW + timedelta(days=60)
        )
        task = Task()
        constraints = ContextConstraints(
            max_tokens=100, strategy=SelectionStrategy.FRESHNESS, freshness_bias=0.5
        )

        engine.select(early, task, constraints)
        result = engine.select(late, task, constraints)

        expected = engine.optimizer.select(late, task, constraints)
        assert result.cached is False
        assert result.paths == expected.paths
        assert result.selection_score == expected.selection_score
        assert len(engine.cache) == 2

    def test_invalidate_spans_every_capture(self):
        engine = ContextEngine()
        early = _make_snapshot()
        late = early.model_copy(update={"captured_at": _NOW + timedelta(days=1)})
        engine.select(early, Task())
        engine.select(late, Task())
        assert engine.invalidate(late) == 2
