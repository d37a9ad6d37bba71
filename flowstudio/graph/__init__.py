"""
Workflow graph model and validator

Immutable nodes, edges and graphs plus the executability rules checked
before a workflow can be published or simulated.
"""

from .branches import BRANCH_ALIASES, normalize_branch
from .models import Edge, Graph, Node, NodeKind, new_id
from .validator import ValidationResult, validate_graph

__all__ = [
    "BRANCH_ALIASES",
    "normalize_branch",
    "Edge",
    "Graph",
    "Node",
    "NodeKind",
    "new_id",
    "ValidationResult",
    "validate_graph",
]
