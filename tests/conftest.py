from datetime import datetime, timezone
from typing import Dict, Tuple

import pytest
from fastapi.testclient import TestClient

from flowstudio.config import Settings
from flowstudio.engine import SimulationEngine, SimulationManager
from flowstudio.graph import Graph, Node, NodeKind
from flowstudio.main import create_app
from flowstudio.versioning import VersionService
from flowstudio.workflows import WorkflowManager

STARTED_AT = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


def build_branching_graph(condition_config: Dict = None) -> Tuple[Graph, Dict[str, Node]]:
    """Trigger T -> Condition C, C -Yes-> A, C -No-> B."""
    graph = Graph()
    graph, t = graph.with_node(NodeKind.TRIGGER, "T", configured=True)
    graph, c = graph.with_node(NodeKind.CONDITION, "C", configured=True, config=condition_config or {})
    graph, a = graph.with_node(NodeKind.ACTION, "A", configured=True, config={"actionType": "slack"})
    graph, b = graph.with_node(NodeKind.ACTION, "B", configured=True, config={"actionType": "email"})
    graph, _ = graph.add_edge(t.id, c.id)
    graph, _ = graph.add_edge(c.id, a.id, "Yes")
    graph, _ = graph.add_edge(c.id, b.id, "No")
    return graph, {"T": t, "C": c, "A": a, "B": b}


def build_ambiguous_graph() -> Tuple[Graph, Dict[str, Node]]:
    """Condition with one labelled and one unlabelled outgoing edge."""
    graph = Graph()
    graph, t = graph.with_node(NodeKind.TRIGGER, "T", configured=True)
    graph, c = graph.with_node(NodeKind.CONDITION, "C", configured=True)
    graph, a = graph.with_node(NodeKind.ACTION, "A", configured=True)
    graph, d = graph.with_node(NodeKind.ACTION, "D", configured=True)
    graph, _ = graph.add_edge(t.id, c.id)
    graph, _ = graph.add_edge(c.id, a.id, "Yes")
    graph, _ = graph.add_edge(c.id, d.id)
    return graph, {"T": t, "C": c, "A": a, "D": d}


@pytest.fixture
def branching_graph():
    return build_branching_graph()


@pytest.fixture
def ambiguous_graph():
    return build_ambiguous_graph()


@pytest.fixture
def engine() -> SimulationEngine:
    return SimulationEngine()


@pytest.fixture
def workflows() -> WorkflowManager:
    return WorkflowManager()


@pytest.fixture
def simulations(workflows) -> SimulationManager:
    return SimulationManager(workflows)


@pytest.fixture
def versions(workflows) -> VersionService:
    return VersionService(workflows)


@pytest.fixture
def client():
    app = create_app(Settings(seed_templates=False))
    with TestClient(app) as test_client:
        yield test_client
