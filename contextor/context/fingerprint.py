"""Stable fingerprints of snapshots and tasks, used as cache key parts."""

from __future__ import annotations

import hashlib
import json

from contextor.schemas.files import ProjectSnapshot
from contextor.schemas.selection import CacheKey, ContextConstraints
from contextor.schemas.task import Task

# Constraint fields already carried by dedicated CacheKey fields
_KEYED_FIELDS = {"strategy", "max_tokens", "max_files", "overrides"}


def _digest(payload: object) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def project_fingerprint(snapshot: ProjectSnapshot) -> str:
    """SHA-256 over the root, each file's identity fields and the graph.

    File order does not matter; any change to a file's size, tokens,
    modification time, kind, language or metadata produces a new
    fingerprint. The capture time is left out; cache_key carries it as
    its own field so project invalidation still spans every capture.
    """
    files = sorted(
        (
            f.path,
            f.token_count,
            f.size_bytes,
            f.modified_at.isoformat(),
            f.kind.value,
            f.language,
            f.metadata,
        )
        for f in snapshot.files
    )
    edges = []
    if snapshot.graph is not None:
        edges = sorted(
            (e.source, e.target, e.type, e.strength) for e in snapshot.graph.edges
        )
    return _digest({"root": snapshot.root, "files": files, "edges": edges})


def task_fingerprint(task: Task) -> str:
    """SHA-256 over the fields that influence scoring."""
    return _digest(
        {
            "type": task.type.value,
            "description": task.description,
            "keywords": sorted(task.keywords),
            "must_include": sorted(task.must_include),
        }
    )


def constraints_fingerprint(constraints: ContextConstraints) -> str:
    """SHA-256 over the filter fields not already part of the key."""
    return _digest(constraints.model_dump(mode="json", exclude=_KEYED_FIELDS))


def cache_key(
    snapshot: ProjectSnapshot,
    task: Task,
    constraints: ContextConstraints,
) -> CacheKey:
    return CacheKey(
        project=project_fingerprint(snapshot),
        task=task_fingerprint(task),
        strategy=constraints.strategy,
        budget=constraints.max_tokens,
        max_files=constraints.max_files,
        options=constraints_fingerprint(constraints),
        captured_at=snapshot.captured_at.isoformat(),
    )
