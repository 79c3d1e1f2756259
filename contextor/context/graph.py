"""Dependency graph construction from analyzer metadata.

The engine never reads source files. Import strings and explicit
references arrive in ``FileRecord.metadata`` and are resolved here
against the snapshot's own file set, so an edge can only ever point at a
file the snapshot contains.

Supported import forms:
    - dotted Python modules (``pkg.mod`` or ``pkg.mod.Symbol``), plus
      leading-dot relative imports
    - relative JS/TS paths (``./util``, ``../lib/http``)
    - slash package paths matched by directory suffix
      (``github.com/acme/app/internal/auth``)
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable

from contextor import paths
from contextor.errors import PartialAnalysisFailure
from contextor.schemas.files import FileRecord
from contextor.schemas.graph import DependencyEdge, DependencyGraph, DependencyNode

logger = logging.getLogger(__name__)

IMPORT_STRENGTH = 1.0
PACKAGE_STRENGTH = 0.5
REFERENCE_STRENGTH = 1.0

_SCRIPT_EXTS = (".ts", ".tsx", ".js", ".jsx", ".mjs")


def _module_keys(path: str) -> list[str]:
    """Dotted module names a file can be imported as."""
    stem, _ = posixpath.splitext(path)
    parts = [p for p in stem.split("/") if p]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    if not parts:
        return []
    keys = [".".join(parts)]
    if parts[0] == "src" and len(parts) > 1:
        keys.append(".".join(parts[1:]))
    return keys


def _string_list(record: FileRecord, key: str) -> list[str]:
    value = record.metadata.get(key, [])
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise PartialAnalysisFailure(record.path, f"metadata[{key!r}] must be a list of strings")
    items = list(value)
    for item in items:
        if not isinstance(item, str):
            raise PartialAnalysisFailure(
                record.path, f"metadata[{key!r}] contains a non-string entry: {item!r}"
            )
    return items


class DependencyGraphBuilder:
    """Builds a DependencyGraph over one snapshot's files.

    Building is idempotent: the same file set always yields an equal
    graph, with nodes and edges in sorted order.
    """

    def build(self, files: list[FileRecord]) -> DependencyGraph:
        records = sorted(files, key=lambda r: r.path)
        known = {r.path for r in records}

        modules: dict[str, str] = {}
        directories: dict[str, list[str]] = {}
        for record in records:
            for key in _module_keys(record.path):
                modules.setdefault(key, record.path)
            if not paths.is_test_path(record.path):
                directory = posixpath.dirname(record.path)
                directories.setdefault(directory, []).append(record.path)

        isolated: set[str] = set()
        best: dict[tuple[str, str], DependencyEdge] = {}
        for record in records:
            try:
                edges = self._edges_for(record, known, modules, directories)
            except PartialAnalysisFailure as exc:
                logger.warning("%s; treating it as an isolated node", exc)
                isolated.add(record.path)
                continue
            for edge in edges:
                key = (edge.source, edge.target)
                current = best.get(key)
                if current is None or edge.strength > current.strength:
                    best[key] = edge

        edges = sorted(
            (
                e for e in best.values()
                if e.source not in isolated and e.target not in isolated
            ),
            key=lambda e: (e.source, e.target),
        )

        imports: dict[str, list[str]] = {path: [] for path in known}
        dependents: dict[str, list[str]] = {path: [] for path in known}
        for edge in edges:
            imports[edge.source].append(edge.target)
            dependents[edge.target].append(edge.source)

        nodes = {
            path: DependencyNode(
                path=path,
                imports=imports[path],
                dependents=sorted(dependents[path]),
            )
            for path in sorted(known)
        }
        logger.debug("Built dependency graph: %d nodes, %d edges", len(nodes), len(edges))
        return DependencyGraph(nodes=nodes, edges=edges)

    def _edges_for(
        self,
        record: FileRecord,
        known: set[str],
        modules: dict[str, str],
        directories: dict[str, list[str]],
    ) -> list[DependencyEdge]:
        edges: list[DependencyEdge] = []

        for spec in _string_list(record, "imports"):
            spec = spec.strip()
            if not spec:
                continue
            if spec.startswith("./") or spec.startswith("../"):
                target = self._resolve_relative(record.path, spec, known)
                if target:
                    edges.append(_edge(record.path, target, "import", IMPORT_STRENGTH))
            elif "/" in spec:
                for target in self._resolve_package(spec, directories):
                    edges.append(_edge(record.path, target, "package", PACKAGE_STRENGTH))
            else:
                target = self._resolve_module(record.path, spec, modules)
                if target:
                    edges.append(_edge(record.path, target, "import", IMPORT_STRENGTH))

        for ref in _string_list(record, "references"):
            target = paths.normalize(ref.strip())
            if target in known:
                edges.append(_edge(record.path, target, "reference", REFERENCE_STRENGTH))

        return [e for e in edges if e.source != e.target]

    @staticmethod
    def _resolve_relative(importer: str, spec: str, known: set[str]) -> str | None:
        base = posixpath.normpath(posixpath.join(posixpath.dirname(importer), spec))
        if base.startswith(".."):
            return None
        candidates = [base]
        candidates += [base + ext for ext in _SCRIPT_EXTS]
        candidates += [f"{base}/index{ext}" for ext in _SCRIPT_EXTS]
        for candidate in candidates:
            if candidate in known:
                return candidate
        return None

    @staticmethod
    def _resolve_package(spec: str, directories: dict[str, list[str]]) -> list[str]:
        spec = spec.strip("/")
        matches = [
            d for d in directories
            if d and (spec == d or spec.endswith("/" + d))
        ]
        if not matches:
            return []
        directory = max(matches, key=len)
        return list(directories[directory])

    @staticmethod
    def _resolve_module(importer: str, spec: str, modules: dict[str, str]) -> str | None:
        if spec.startswith("."):
            level = len(spec) - len(spec.lstrip("."))
            package = posixpath.dirname(importer).split("/") if "/" in importer else []
            if level - 1 > len(package):
                return None
            anchor = package[: len(package) - (level - 1)]
            rest = spec[level:]
            parts = anchor + ([p for p in rest.split(".") if p] if rest else [])
        else:
            parts = spec.split(".")

        # Strip trailing symbol names until a module matches
        for end in range(len(parts), 0, -1):
            target = modules.get(".".join(parts[:end]))
            if target:
                return target
        return None


def _edge(source: str, target: str, edge_type: str, strength: float) -> DependencyEdge:
    return DependencyEdge(source=source, target=target, type=edge_type, strength=strength)
