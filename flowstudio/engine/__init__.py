"""
Simulation engine components

The step-wise simulator, its state models and the per-workflow session manager.
"""

from .actions import ActionRegistry
from .conditions import ConditionEvaluator
from .engine import SimulationEngine
from .models import (
    ExecutionState,
    MessageFlowEntry,
    NodeStatus,
    PlannedStep,
    SimulationStatus,
    TimelineEntry,
)
from .simulations import SimulationManager

__all__ = [
    "ActionRegistry",
    "ConditionEvaluator",
    "SimulationEngine",
    "SimulationManager",
    "ExecutionState",
    "MessageFlowEntry",
    "NodeStatus",
    "PlannedStep",
    "SimulationStatus",
    "TimelineEntry",
]
