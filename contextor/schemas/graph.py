"""Dependency graph schemas.

A DependencyGraph maps every file path of a snapshot to a node holding its
outgoing imports and incoming dependents. Edges carry a type tag and a
strength weight. The graph is rebuilt per snapshot and never patched.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class DependencyEdge(BaseModel):
    """A directed ``source`` → ``target`` relationship (source needs target)."""

    source: str = Field(description="Path of the importing file")
    target: str = Field(description="Path of the imported file")
    type: str = Field(default="import", description="Edge kind: import, package, reference")
    strength: float = Field(
        default=1.0, ge=0.0, le=1.0, description="Relationship weight"
    )


class DependencyNode(BaseModel):
    """A file in the dependency graph."""

    path: str = Field(description="File path, the node key")
    imports: list[str] = Field(
        default_factory=list, description="Paths this file depends on"
    )
    dependents: list[str] = Field(
        default_factory=list, description="Paths that depend on this file"
    )


class DependencyGraph(BaseModel):
    """Import/reference graph over the files of one snapshot."""

    nodes: dict[str, DependencyNode] = Field(default_factory=dict)
    edges: list[DependencyEdge] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_endpoints(self) -> DependencyGraph:
        for edge in self.edges:
            if edge.source not in self.nodes or edge.target not in self.nodes:
                raise ValueError(
                    f"Edge {edge.source} -> {edge.target} references a missing node"
                )
        return self

    def __contains__(self, path: object) -> bool:
        return path in self.nodes

    def dependencies(self, path: str) -> list[str]:
        node = self.nodes.get(path)
        return list(node.imports) if node else []

    def dependents(self, path: str) -> list[str]:
        node = self.nodes.get(path)
        return list(node.dependents) if node else []

    def edge_strengths(self) -> dict[tuple[str, str], float]:
        """Map (source, target) to the strongest edge between them."""
        strengths: dict[tuple[str, str], float] = {}
        for edge in self.edges:
            key = (edge.source, edge.target)
            strengths[key] = max(strengths.get(key, 0.0), edge.strength)
        return strengths

    def centrality(self, path: str) -> float:
        """Degree centrality in [0, 1], weighting dependents twice.

        Files many others depend on are hubs; files that import many others
        are integration points and count half as much.
        """
        node = self.nodes.get(path)
        if node is None:
            return 0.0
        total = len(self.nodes)
        if total <= 1:
            return 0.5
        in_degree = len(node.dependents)
        out_degree = len(node.imports)
        return min(1.0, (in_degree * 2 + out_degree) / (3 * (total - 1)))

    def transitive_dependencies(self, path: str, depth: int = 1) -> list[str]:
        """Breadth-first dependencies of *path* up to *depth* hops.

        Nearer dependencies come first; within one hop the order follows
        the node's import list.
        """
        seen = {path}
        frontier = [path]
        ordered: list[str] = []
        for _ in range(max(depth, 0)):
            next_frontier: list[str] = []
            for current in frontier:
                for dep in self.dependencies(current):
                    if dep in seen:
                        continue
                    seen.add(dep)
                    ordered.append(dep)
                    next_frontier.append(dep)
            if not next_frontier:
                break
            frontier = next_frontier
        return ordered
