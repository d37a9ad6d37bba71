from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
import copy
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flowstudio.errors import DuplicateId, InvalidReference, NotFound, SelfLoop


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class NodeKind(str, Enum):
    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"


class Node(BaseModel):
    """A single step of a workflow graph"""
    model_config = ConfigDict(frozen=True)

    id: str
    kind: NodeKind
    label: str
    configured: bool = False
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("label")
    @classmethod
    def _label_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("label must not be empty")
        return value

    @classmethod
    def create(
        cls,
        kind: NodeKind,
        label: str,
        configured: bool = False,
        description: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> "Node":
        return cls(
            id=new_id("node"),
            kind=kind,
            label=label,
            configured=configured,
            description=description,
            config=config or {},
        )


class Edge(BaseModel):
    """Directed connection; ``label`` picks the branch out of a condition"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    label: Optional[str] = None

    @field_validator("label")
    @classmethod
    def _blank_label_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @classmethod
    def create(cls, source: str, target: str, label: Optional[str] = None) -> "Edge":
        return cls(id=new_id("edge"), source=source, target=target, label=label)


class Graph(BaseModel):
    """
    Immutable workflow graph.

    Every mutation returns a new Graph and leaves the receiver untouched, so
    snapshots and undo history can hold on to old graphs safely.
    """
    model_config = ConfigDict(frozen=True)

    nodes: Tuple[Node, ...] = ()
    edges: Tuple[Edge, ...] = ()

    # -- lookups -----------------------------------------------------------

    def node(self, node_id: str) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def has_node(self, node_id: str) -> bool:
        return any(n.id == node_id for n in self.nodes)

    def edge(self, edge_id: str) -> Optional[Edge]:
        return next((e for e in self.edges if e.id == edge_id), None)

    def outgoing(self, node_id: str) -> List[Edge]:
        """Edges leaving ``node_id`` in insertion order."""
        return [e for e in self.edges if e.source == node_id]

    def incoming(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def triggers(self) -> List[Node]:
        return [n for n in self.nodes if n.kind == NodeKind.TRIGGER]

    # -- transforms --------------------------------------------------------

    def add_node(self, node: Node) -> "Graph":
        if self.has_node(node.id):
            raise DuplicateId(f"node {node.id} already exists", {"node_id": node.id})
        return Graph(nodes=self.nodes + (node,), edges=self.edges)

    def with_node(self, kind: NodeKind, label: str, **fields: Any) -> Tuple["Graph", Node]:
        """Create a node with a fresh id and return it together with the new graph."""
        node = Node.create(kind, label, **fields)
        return self.add_node(node), node

    def update_node(self, node_id: str, **changes: Any) -> "Graph":
        current = self.node(node_id)
        if current is None:
            raise NotFound(f"node {node_id} not found", {"node_id": node_id})
        if "id" in changes or "kind" in changes:
            raise ValueError("node id and kind cannot be changed")
        updated = Node(**{**current.model_dump(), **changes})
        nodes = tuple(updated if n.id == node_id else n for n in self.nodes)
        return Graph(nodes=nodes, edges=self.edges)

    def remove_node(self, node_id: str) -> "Graph":
        """Remove a node together with every edge touching it."""
        if not self.has_node(node_id):
            raise NotFound(f"node {node_id} not found", {"node_id": node_id})
        return Graph(
            nodes=tuple(n for n in self.nodes if n.id != node_id),
            edges=tuple(e for e in self.edges if node_id not in (e.source, e.target)),
        )

    def add_edge(
        self,
        source: str,
        target: str,
        label: Optional[str] = None,
        edge_id: Optional[str] = None,
    ) -> Tuple["Graph", Edge]:
        for endpoint in (source, target):
            if not self.has_node(endpoint):
                raise InvalidReference(
                    f"edge endpoint {endpoint} is not a node of this graph",
                    {"node_id": endpoint},
                )
        if source == target:
            raise SelfLoop(f"node {source} cannot connect to itself", {"node_id": source})

        edge = Edge(id=edge_id or new_id("edge"), source=source, target=target, label=label)
        if self.edge(edge.id) is not None:
            raise DuplicateId(f"edge {edge.id} already exists", {"edge_id": edge.id})
        return Graph(nodes=self.nodes, edges=self.edges + (edge,)), edge

    def remove_edge(self, edge_id: str) -> "Graph":
        if self.edge(edge_id) is None:
            raise NotFound(f"edge {edge_id} not found", {"edge_id": edge_id})
        return Graph(nodes=self.nodes, edges=tuple(e for e in self.edges if e.id != edge_id))

    def clone_with_fresh_ids(self) -> "Graph":
        """Deep copy with new node and edge ids, edges remapped to the new nodes."""
        id_map = {n.id: new_id("node") for n in self.nodes}
        nodes = tuple(
            Node(
                id=id_map[n.id],
                kind=n.kind,
                label=n.label,
                configured=n.configured,
                description=n.description,
                config=copy.deepcopy(n.config),
            )
            for n in self.nodes
        )
        edges = tuple(
            Edge(
                id=new_id("edge"),
                source=id_map.get(e.source, e.source),
                target=id_map.get(e.target, e.target),
                label=e.label,
            )
            for e in self.edges
        )
        return Graph(nodes=nodes, edges=edges)

    # -- invariants --------------------------------------------------------

    def check_integrity(self) -> None:
        """
        Re-check the structural invariants of a graph received from outside.

        Raises the first violation found: DuplicateId, InvalidReference or SelfLoop.
        """
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise DuplicateId(f"node {node.id} appears more than once", {"node_id": node.id})
            seen.add(node.id)

        edge_ids = set()
        for edge in self.edges:
            if edge.id in edge_ids:
                raise DuplicateId(f"edge {edge.id} appears more than once", {"edge_id": edge.id})
            edge_ids.add(edge.id)
            for endpoint in (edge.source, edge.target):
                if endpoint not in seen:
                    raise InvalidReference(
                        f"edge {edge.id} references missing node {endpoint}",
                        {"edge_id": edge.id, "node_id": endpoint},
                    )
            if edge.source == edge.target:
                raise SelfLoop(f"edge {edge.id} is a self-loop", {"edge_id": edge.id})
