"""
Stable configuration hash for workflow graphs.

Ids are left out of the canonical form. Each node is described by its
content, then refined with the labels of its incoming and outgoing
neighbours (Weisfeiler-Lehman style) until the partition stops splitting,
so nodes with equal content but different wiring get different labels.
Edges are described by the labels of their endpoints. Two graphs built
independently with the same steps and wiring hash the same, whatever ids
or insertion order they ended up with.
"""

from typing import Any, Dict, List
import hashlib
import json

from flowstudio.graph import Graph, Node


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _digest(value: Any) -> str:
    return hashlib.sha256(_dumps(value).encode("utf-8")).hexdigest()


def _node_content(node: Node) -> str:
    return _dumps({
        "kind": node.kind.value,
        "label": node.label,
        "configured": node.configured,
        "config": node.config,
    })


def structural_labels(graph: Graph) -> Dict[str, str]:
    """Id-independent label per node id, combining content and neighbourhood."""
    content = {n.id: _node_content(n) for n in graph.nodes}
    labels = {node_id: _digest(text) for node_id, text in content.items()}
    classes = len(set(labels.values()))

    for _ in range(len(graph.nodes)):
        refined = {}
        for node in graph.nodes:
            outgoing = sorted(
                _dumps([e.label or "", labels.get(e.target, e.target)]) for e in graph.outgoing(node.id)
            )
            incoming = sorted(
                _dumps([e.label or "", labels.get(e.source, e.source)]) for e in graph.incoming(node.id)
            )
            refined[node.id] = _digest([content[node.id], outgoing, incoming])
        labels = refined
        refined_classes = len(set(labels.values()))
        if refined_classes == classes:
            break
        classes = refined_classes
    return labels


def canonical_graph(graph: Graph) -> Dict[str, List[str]]:
    labels = structural_labels(graph)
    nodes = sorted(labels.values())
    edges = sorted(
        _dumps([labels.get(e.source, e.source), labels.get(e.target, e.target), e.label or ""])
        for e in graph.edges
    )
    return {"nodes": nodes, "edges": edges}


def config_hash(graph: Graph) -> str:
    return _digest(canonical_graph(graph))
