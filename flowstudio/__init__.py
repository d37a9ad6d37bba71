"""
Flow Studio

Workflow graph model, validator, step-wise simulation engine, lifecycle
management and versioning behind the operator dashboard.
"""

__version__ = "1.0.0"

from .engine import SimulationEngine, SimulationManager
from .graph import Edge, Graph, Node, NodeKind, validate_graph
from .versioning import VersionService
from .workflows import Workflow, WorkflowManager, WorkflowStatus

__all__ = [
    "Edge",
    "Graph",
    "Node",
    "NodeKind",
    "validate_graph",
    "SimulationEngine",
    "SimulationManager",
    "VersionService",
    "Workflow",
    "WorkflowManager",
    "WorkflowStatus",
]
