"""
Versioning components

Workflow snapshots, rollback, version comparison and A/B experiments.
"""

from .hashing import canonical_graph, config_hash
from .models import (
    ExperimentAssignment,
    ExperimentStatus,
    SnapshotKind,
    VersionDiff,
    VersionSnapshot,
)
from .service import VersionService, diff_graphs

__all__ = [
    "canonical_graph",
    "config_hash",
    "diff_graphs",
    "ExperimentAssignment",
    "ExperimentStatus",
    "SnapshotKind",
    "VersionDiff",
    "VersionService",
    "VersionSnapshot",
]
