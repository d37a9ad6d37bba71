from typing import Dict, List, Optional
import logging
import zlib

from flowstudio.errors import ExperimentAlreadyRunning, InvalidArgument, NotFound
from flowstudio.graph import Graph, new_id
from flowstudio.workflows import Workflow, WorkflowManager
from flowstudio.workflows.models import utc_now

from .hashing import config_hash
from .models import (
    EdgeChange, ExperimentAssignment, ExperimentStatus, NodeChange,
    SnapshotKind, VersionDiff, VersionSnapshot
)

logger = logging.getLogger(__name__)

NODE_FIELDS = ("kind", "label", "configured", "description", "config")


class VersionService:
    """
    Snapshots, rollback, comparison and A/B experiments for workflows.

    Snapshots are append-only per workflow and labelled ``v1``, ``v2``, ...
    Rollback writes an old graph back and records a new snapshot, so history
    only ever grows.
    """

    def __init__(self, workflows: WorkflowManager):
        self.workflows = workflows
        self.versions: Dict[str, List[VersionSnapshot]] = {}
        self.experiments: Dict[str, List[ExperimentAssignment]] = {}

    # -- snapshots ---------------------------------------------------------

    def snapshot(self, workflow_id: str, notes: str = "") -> VersionSnapshot:
        workflow = self.workflows.get(workflow_id)
        return self._append(workflow_id, workflow.graph, notes, SnapshotKind.MANUAL)

    def list_versions(self, workflow_id: str) -> List[VersionSnapshot]:
        """Snapshots of a workflow, newest first."""
        self.workflows.get(workflow_id)
        return list(reversed(self.versions.get(workflow_id, [])))

    def get_version(self, workflow_id: str, version: str) -> VersionSnapshot:
        for snapshot in self.versions.get(workflow_id, []):
            if snapshot.version == version:
                return snapshot
        raise NotFound(
            f"version {version} of workflow {workflow_id} not found",
            {"workflow_id": workflow_id, "version": version},
        )

    async def rollback(self, workflow_id: str, target_version: str) -> Workflow:
        """Restore the graph of ``target_version`` and record the rollback as a new snapshot."""
        target = self.get_version(workflow_id, target_version)
        workflow = await self.workflows.update(workflow_id, graph=target.graph.model_copy(deep=True))
        self._append(
            workflow_id,
            workflow.graph,
            f"Rollback to {target_version}",
            SnapshotKind.ROLLBACK,
            source_version=target_version,
        )
        logger.info(f"[{workflow_id}] rolled back to {target_version}")
        return workflow

    def compare(self, workflow_id: str, version_a: str, version_b: str) -> VersionDiff:
        a = self.get_version(workflow_id, version_a)
        b = self.get_version(workflow_id, version_b)
        diff = diff_graphs(a.graph, b.graph)
        return VersionDiff(
            workflow_id=workflow_id,
            version_a=version_a,
            version_b=version_b,
            same_config=a.config_hash == b.config_hash,
            **diff,
        )

    def _append(
        self,
        workflow_id: str,
        graph: Graph,
        notes: str,
        kind: SnapshotKind,
        source_version: Optional[str] = None,
    ) -> VersionSnapshot:
        history = self.versions.setdefault(workflow_id, [])
        snapshot = VersionSnapshot(
            workflow_id=workflow_id,
            version=f"v{len(history) + 1}",
            graph=graph.model_copy(deep=True),
            config_hash=config_hash(graph),
            notes=notes,
            kind=kind,
            source_version=source_version,
            created_at=utc_now(),
        )
        history.append(snapshot)
        logger.info(f"[{workflow_id}] snapshot {snapshot.version} ({snapshot.config_hash[:12]})")
        return snapshot

    # -- experiments -------------------------------------------------------

    def start_experiment(
        self,
        workflow_id: str,
        version_a: str,
        version_b: str,
        traffic_split: float,
    ) -> ExperimentAssignment:
        if not 0.0 <= traffic_split <= 1.0:
            raise InvalidArgument(
                f"traffic_split must be between 0 and 1, got {traffic_split}",
                {"traffic_split": traffic_split},
            )
        self.workflows.get(workflow_id)
        if self.running_experiment(workflow_id) is not None:
            raise ExperimentAlreadyRunning(
                f"workflow {workflow_id} already has a running experiment",
                {"workflow_id": workflow_id},
            )
        self.get_version(workflow_id, version_a)
        self.get_version(workflow_id, version_b)

        experiment = ExperimentAssignment(
            id=new_id("exp"),
            workflow_id=workflow_id,
            version_a=version_a,
            version_b=version_b,
            traffic_split=traffic_split,
            start_time=utc_now(),
        )
        self.experiments.setdefault(workflow_id, []).append(experiment)
        logger.info(f"[{workflow_id}] experiment {experiment.id}: {version_a} vs {version_b} at {traffic_split:.0%} to B")
        return experiment

    def list_experiments(self, workflow_id: str) -> List[ExperimentAssignment]:
        return list(self.experiments.get(workflow_id, []))

    def running_experiment(self, workflow_id: str) -> Optional[ExperimentAssignment]:
        return next(
            (e for e in self.experiments.get(workflow_id, []) if e.status == ExperimentStatus.RUNNING),
            None,
        )

    def stop_experiment(self, experiment_id: str) -> ExperimentAssignment:
        return self._finish(experiment_id, ExperimentStatus.STOPPED)

    def complete_experiment(self, experiment_id: str) -> ExperimentAssignment:
        return self._finish(experiment_id, ExperimentStatus.COMPLETED)

    def choose_variant(self, workflow_id: str, subject_key: str) -> str:
        """
        Advisory routing: the version a given subject (user, request, ...) should see.

        The subject is hashed into a stable bucket in [0, 1); buckets below the
        split go to B.
        """
        experiment = self.running_experiment(workflow_id)
        if experiment is None:
            raise NotFound(f"workflow {workflow_id} has no running experiment", {"workflow_id": workflow_id})
        bucket = zlib.crc32(f"{experiment.id}:{subject_key}".encode("utf-8")) / 2 ** 32
        return experiment.version_b if bucket < experiment.traffic_split else experiment.version_a

    def _finish(self, experiment_id: str, status: ExperimentStatus) -> ExperimentAssignment:
        for workflow_id, experiments in self.experiments.items():
            for index, experiment in enumerate(experiments):
                if experiment.id != experiment_id:
                    continue
                if experiment.status != ExperimentStatus.RUNNING:
                    return experiment
                finished = experiment.model_copy(update={"status": status, "end_time": utc_now()})
                experiments[index] = finished
                logger.info(f"[{workflow_id}] experiment {experiment_id} {status.value}")
                return finished
        raise NotFound(f"experiment {experiment_id} not found", {"experiment_id": experiment_id})


def diff_graphs(a: Graph, b: Graph) -> Dict[str, list]:
    """Set difference of two graphs keyed by node and edge id."""
    nodes_a = {n.id: n for n in a.nodes}
    nodes_b = {n.id: n for n in b.nodes}
    edges_a = {e.id: e for e in a.edges}
    edges_b = {e.id: e for e in b.edges}

    changed_nodes = []
    for node_id, before in nodes_a.items():
        after = nodes_b.get(node_id)
        if after is None:
            continue
        fields = [f for f in NODE_FIELDS if getattr(before, f) != getattr(after, f)]
        if fields:
            changed_nodes.append(NodeChange(node_id=node_id, fields=fields, before=before, after=after))

    changed_edges = [
        EdgeChange(edge_id=edge_id, before=before, after=edges_b[edge_id])
        for edge_id, before in edges_a.items()
        if edge_id in edges_b and before != edges_b[edge_id]
    ]

    return {
        "added_nodes": [n for i, n in nodes_b.items() if i not in nodes_a],
        "removed_nodes": [n for i, n in nodes_a.items() if i not in nodes_b],
        "changed_nodes": changed_nodes,
        "added_edges": [e for i, e in edges_b.items() if i not in edges_a],
        "removed_edges": [e for i, e in edges_a.items() if i not in edges_b],
        "changed_edges": changed_edges,
    }
