"""Publish ordering for a batch of schemas.

Edges only exist between schemas of the same batch: a reference to an
artifact outside the batch is assumed to be published already and plays no
part in ordering.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence

from .errors import CircularDependency, InvalidSchema
from .models import SchemaWithReferences


def dependency_map(batch: Sequence[SchemaWithReferences]) -> dict[str, list[str]]:
    """Return artifact id -> ids of the in-batch schemas it references.

    Each dependency appears once, in the order the references were detected.
    """
    batch_ids = {item.artifact_id for item in batch}
    deps: dict[str, list[str]] = {}
    for item in batch:
        if item.artifact_id in deps:  # first occurrence wins
            continue
        targets: list[str] = []
        for ref in item.references:
            target = ref.artifact_id
            if target and target in batch_ids and target not in targets:
                targets.append(target)
        deps[item.artifact_id] = targets
    return deps


def order_by_dependencies(batch: Sequence[SchemaWithReferences]) -> list[SchemaWithReferences]:
    """Order ``batch`` so every schema follows the schemas it references.

    Kahn's algorithm; ties keep input order. Raises ``InvalidSchema`` when two
    schemas share an artifact id and ``CircularDependency`` with every
    artifact id that could not be placed.
    """
    if not batch:
        return []

    by_id: dict[str, SchemaWithReferences] = {}
    for item in batch:
        if item.artifact_id in by_id:
            raise InvalidSchema("artifact id appears more than once in the batch", item.artifact_id)
        by_id[item.artifact_id] = item
    deps = dependency_map(batch)
    position = {artifact_id: idx for idx, artifact_id in enumerate(by_id)}

    in_degree = {artifact_id: len(targets) for artifact_id, targets in deps.items()}
    dependents: dict[str, list[str]] = {artifact_id: [] for artifact_id in deps}
    for artifact_id, targets in deps.items():
        for target in targets:
            dependents[target].append(artifact_id)
    for waiting in dependents.values():
        waiting.sort(key=position.__getitem__)

    queue = deque(aid for aid in by_id if in_degree[aid] == 0)
    ordered: list[SchemaWithReferences] = []
    while queue:
        node = queue.popleft()
        ordered.append(by_id[node])
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(ordered) != len(batch):
        placed = {item.artifact_id for item in ordered}
        raise CircularDependency(aid for aid in by_id if aid not in placed)
    return ordered


__all__ = ["dependency_map", "order_by_dependencies"]
