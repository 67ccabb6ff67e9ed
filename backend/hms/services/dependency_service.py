# Overview: Transitive permission dependency validation.

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass

from ..extensions import db
from ..models import Permission, PermissionDependency


@dataclass(frozen=True)
class DependencyError:
    """One missing edge: `permission` requires `missing`, which is absent."""
    permission_id: int
    permission: str
    missing_id: int
    missing: str

    def __str__(self) -> str:
        return f"Permission '{self.permission}' requires '{self.missing}'"


def load_dependency_graph() -> dict[int, set[int]]:
    """permission_id -> ids it directly depends on."""
    graph: dict[int, set[int]] = defaultdict(set)
    rows = db.session.query(
        PermissionDependency.permission_id,
        PermissionDependency.depends_on_permission_id,
    ).all()
    for permission_id, depends_on_id in rows:
        graph[permission_id].add(depends_on_id)
    return graph


def _missing_edges(start_ids, candidates: set[int]) -> list[tuple[int, int]]:
    graph = load_dependency_graph()

    missing: list[tuple[int, int]] = []
    seen_edges: set[tuple[int, int]] = set()
    visited: set[int] = set()
    queue = deque(sorted(set(start_ids)))

    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        for prerequisite in sorted(graph.get(current, ())):
            edge = (current, prerequisite)
            if edge in seen_edges:
                continue
            seen_edges.add(edge)
            if prerequisite not in candidates:
                missing.append(edge)
            queue.append(prerequisite)

    return missing


def _to_errors(edges: list[tuple[int, int]]) -> list[DependencyError]:
    if not edges:
        return []

    ids = {pid for edge in edges for pid in edge}
    names = dict(db.session.query(Permission.id, Permission.name).filter(Permission.id.in_(ids)).all())
    return [
        DependencyError(
            permission_id=dependent,
            permission=names.get(dependent, str(dependent)),
            missing_id=prerequisite,
            missing=names.get(prerequisite, str(prerequisite)),
        )
        for dependent, prerequisite in edges
    ]


def validate_permission_dependencies(permission_ids) -> list[DependencyError]:
    """
    Check that a candidate permission set carries all its prerequisites.

    Walks depends_on edges transitively from every candidate. Each edge
    whose prerequisite is outside the candidate set yields one error, so
    C -> B -> A with only C present reports both C->B and B->A. Cycles in
    the graph are tolerated.
    """
    candidates = set(permission_ids)
    return _to_errors(_missing_edges(candidates, candidates))


def validate_permission_additions(existing_ids, added_ids) -> list[DependencyError]:
    """
    Like validate_permission_dependencies, but only walks from added_ids.

    Gaps already present in existing_ids are not reported, so granting an
    unrelated permission is not blocked by an earlier deny override.
    """
    added = set(added_ids)
    return _to_errors(_missing_edges(added, set(existing_ids) | added))
