from collections import deque
from typing import Dict, List, Set

from pydantic import BaseModel, Field

from .branches import normalize_branch
from .models import Graph, NodeKind


class ValidationResult(BaseModel):
    """Outcome of validate_graph; warnings never make a graph invalid"""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def validate_graph(graph: Graph) -> ValidationResult:
    """
    Check a graph against the executability rules.

    Read-only pass over the graph. Errors block publishing and simulation,
    warnings are advisory (unreachable or unconfigured nodes).
    """
    errors: List[str] = []
    warnings: List[str] = []

    node_ids = [n.id for n in graph.nodes]
    known: Set[str] = set(node_ids)

    triggers = graph.triggers()
    if not triggers:
        errors.append("graph has no trigger node")

    for edge in graph.edges:
        for endpoint in (edge.source, edge.target):
            if endpoint not in known:
                errors.append(f"edge {edge.id} references missing node {endpoint}")

    for edge in graph.edges:
        if edge.source == edge.target:
            errors.append(f"edge {edge.id} is a self-loop on node {edge.source}")

    duplicates = sorted({i for i in node_ids if node_ids.count(i) > 1})
    for node_id in duplicates:
        errors.append(f"node id {node_id} is used more than once")

    for node in graph.nodes:
        if node.kind != NodeKind.CONDITION:
            continue
        outgoing = graph.outgoing(node.id)
        if len(outgoing) < 2:
            continue
        labels = [normalize_branch(e.label) for e in outgoing]
        if None in labels or len(set(labels)) != len(labels):
            errors.append(f"ambiguous branch from condition node {node.id}")

    # With no trigger every node is unreachable; the error above already covers it
    if triggers:
        reachable = _reachable_from(graph, [t.id for t in triggers], known)
        for node in graph.nodes:
            if node.id not in reachable:
                warnings.append(f"node {node.id} ({node.label}) is not reachable from any trigger")

    for node in graph.nodes:
        if not node.configured:
            warnings.append(f"node {node.id} ({node.label}) is not configured")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def _reachable_from(graph: Graph, roots: List[str], known: Set[str]) -> Set[str]:
    adjacency: Dict[str, List[str]] = {}
    for edge in graph.edges:
        if edge.source in known and edge.target in known:
            adjacency.setdefault(edge.source, []).append(edge.target)

    seen = set(roots)
    queue = deque(roots)
    while queue:
        current = queue.popleft()
        for nxt in adjacency.get(current, []):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen
