import pytest
from pydantic import ValidationError

from flowstudio.errors import ExperimentAlreadyRunning, InvalidArgument, NotFound
from flowstudio.graph import Graph, NodeKind
from flowstudio.versioning import (
    ExperimentAssignment, ExperimentStatus, SnapshotKind, config_hash
)

from .conftest import build_branching_graph


def test_config_hash_ignores_ids_and_order():
    first, _ = build_branching_graph()

    # same steps and wiring, added in a different order
    graph = Graph()
    graph, b = graph.with_node(NodeKind.ACTION, "B", configured=True, config={"actionType": "email"})
    graph, a = graph.with_node(NodeKind.ACTION, "A", configured=True, config={"actionType": "slack"})
    graph, c = graph.with_node(NodeKind.CONDITION, "C", configured=True, config={})
    graph, t = graph.with_node(NodeKind.TRIGGER, "T", configured=True)
    graph, _ = graph.add_edge(c.id, b.id, "No")
    graph, _ = graph.add_edge(c.id, a.id, "Yes")
    graph, _ = graph.add_edge(t.id, c.id)

    assert config_hash(first) == config_hash(graph)
    assert config_hash(first) == config_hash(first.clone_with_fresh_ids())


def test_config_hash_changes_with_content():
    graph, nodes = build_branching_graph()

    relabelled = graph.update_node(nodes["A"].id, label="Alert")
    rewired = graph.remove_edge(graph.edges[-1].id)

    assert config_hash(graph) != config_hash(relabelled)
    assert config_hash(graph) != config_hash(rewired)


@pytest.mark.asyncio
async def test_snapshots_are_labelled_and_listed_newest_first(workflows, versions, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph)

    v1 = versions.snapshot(workflow.id, "first")
    v2 = versions.snapshot(workflow.id)

    assert (v1.version, v2.version) == ("v1", "v2")
    assert v1.config_hash == config_hash(graph)
    assert [s.version for s in versions.list_versions(workflow.id)] == ["v2", "v1"]

    with pytest.raises(NotFound):
        versions.snapshot("wf_missing")
    with pytest.raises(NotFound):
        versions.get_version(workflow.id, "v9")


@pytest.mark.asyncio
async def test_rollback_restores_graph_and_extends_history(workflows, versions, branching_graph):
    graph, nodes = branching_graph
    workflow = await workflows.create("Flow", graph)
    versions.snapshot(workflow.id)
    changed = graph.update_node(nodes["A"].id, label="Alert")
    await workflows.update(workflow.id, graph=changed)
    versions.snapshot(workflow.id)

    restored = await versions.rollback(workflow.id, "v1")

    assert restored.graph == graph
    assert workflows.get(workflow.id).graph == graph
    history = versions.list_versions(workflow.id)
    assert [s.version for s in history] == ["v3", "v2", "v1"]
    assert history[0].kind == SnapshotKind.ROLLBACK
    assert history[0].source_version == "v1"
    assert history[0].notes == "Rollback to v1"
    assert history[0].config_hash == history[2].config_hash


@pytest.mark.asyncio
async def test_rollback_to_unknown_version(workflows, versions):
    workflow = await workflows.create("Flow")

    with pytest.raises(NotFound):
        await versions.rollback(workflow.id, "v1")


@pytest.mark.asyncio
async def test_compare_reports_changes_by_id(workflows, versions, branching_graph):
    graph, nodes = branching_graph
    workflow = await workflows.create("Flow", graph)
    versions.snapshot(workflow.id)

    changed = graph.update_node(nodes["A"].id, label="Alert")
    changed = changed.remove_node(nodes["B"].id)
    changed, extra = changed.with_node(NodeKind.ACTION, "Log", configured=True)
    changed, extra_edge = changed.add_edge(nodes["A"].id, extra.id)
    await workflows.update(workflow.id, graph=changed)
    versions.snapshot(workflow.id)

    diff = versions.compare(workflow.id, "v1", "v2")

    assert [c.node_id for c in diff.changed_nodes] == [nodes["A"].id]
    assert diff.changed_nodes[0].fields == ["label"]
    assert [n.id for n in diff.added_nodes] == [extra.id]
    assert [n.id for n in diff.removed_nodes] == [nodes["B"].id]
    assert [e.id for e in diff.added_edges] == [extra_edge.id]
    assert [e.label for e in diff.removed_edges] == ["No"]
    assert diff.changed_edges == []
    assert diff.same_config is False


@pytest.mark.asyncio
async def test_compare_identical_versions(workflows, versions, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph)
    versions.snapshot(workflow.id)
    versions.snapshot(workflow.id)

    diff = versions.compare(workflow.id, "v1", "v2")

    assert diff.same_config
    assert diff.added_nodes == diff.removed_nodes == diff.changed_nodes == []


@pytest.mark.asyncio
async def test_only_one_running_experiment(workflows, versions, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph)
    versions.snapshot(workflow.id)
    versions.snapshot(workflow.id)

    experiment = versions.start_experiment(workflow.id, "v1", "v2", 0.3)
    assert experiment.status == ExperimentStatus.RUNNING

    with pytest.raises(ExperimentAlreadyRunning):
        versions.start_experiment(workflow.id, "v1", "v2", 0.5)

    stopped = versions.stop_experiment(experiment.id)
    assert stopped.status == ExperimentStatus.STOPPED
    assert stopped.end_time is not None
    # finishing twice keeps the first outcome
    assert versions.complete_experiment(experiment.id).status == ExperimentStatus.STOPPED

    second = versions.start_experiment(workflow.id, "v2", "v1", 0.5)
    assert [e.id for e in versions.list_experiments(workflow.id)] == [experiment.id, second.id]


@pytest.mark.asyncio
async def test_experiment_needs_existing_versions(workflows, versions):
    workflow = await workflows.create("Flow")
    versions.snapshot(workflow.id)

    with pytest.raises(NotFound):
        versions.start_experiment(workflow.id, "v1", "v7", 0.5)
    with pytest.raises(NotFound):
        versions.stop_experiment("exp_missing")


@pytest.mark.parametrize("split", [-0.1, 1.5])
def test_traffic_split_must_be_a_fraction(split):
    with pytest.raises(ValidationError):
        ExperimentAssignment(
            id="exp_1",
            workflow_id="wf_1",
            version_a="v1",
            version_b="v2",
            traffic_split=split,
            start_time="2025-01-15T10:00:00Z",
        )


@pytest.mark.asyncio
async def test_choose_variant_follows_split(workflows, versions):
    workflow = await workflows.create("Flow")
    versions.snapshot(workflow.id)
    versions.snapshot(workflow.id)

    with pytest.raises(NotFound):
        versions.choose_variant(workflow.id, "user-1")

    all_a = versions.start_experiment(workflow.id, "v1", "v2", 0.0)
    assert {versions.choose_variant(workflow.id, f"user-{i}") for i in range(20)} == {"v1"}
    versions.complete_experiment(all_a.id)

    versions.start_experiment(workflow.id, "v1", "v2", 1.0)
    assert {versions.choose_variant(workflow.id, f"user-{i}") for i in range(20)} == {"v2"}


@pytest.mark.asyncio
async def test_choose_variant_is_sticky(workflows, versions):
    workflow = await workflows.create("Flow")
    versions.snapshot(workflow.id)
    versions.snapshot(workflow.id)
    versions.start_experiment(workflow.id, "v1", "v2", 0.5)

    picks = {versions.choose_variant(workflow.id, "user-42") for _ in range(5)}

    assert len(picks) == 1


def _fan_out_graph(second_log_parent: int) -> Graph:
    """T feeds two identical email nodes; the two identical log nodes hang off them."""
    graph = Graph()
    graph, t = graph.with_node(NodeKind.TRIGGER, "T", configured=True)
    graph, p1 = graph.with_node(NodeKind.ACTION, "Send Email", configured=True)
    graph, p2 = graph.with_node(NodeKind.ACTION, "Send Email", configured=True)
    graph, q1 = graph.with_node(NodeKind.ACTION, "Log", configured=True)
    graph, q2 = graph.with_node(NodeKind.ACTION, "Log", configured=True)
    graph, _ = graph.add_edge(t.id, p1.id)
    graph, _ = graph.add_edge(t.id, p2.id)
    graph, _ = graph.add_edge(p1.id, q1.id)
    graph, _ = graph.add_edge((p1 if second_log_parent == 1 else p2).id, q2.id)
    return graph


def test_config_hash_separates_same_content_different_wiring():
    both_on_first = _fan_out_graph(second_log_parent=1)
    one_each = _fan_out_graph(second_log_parent=2)

    assert config_hash(both_on_first) != config_hash(one_each)
    assert config_hash(both_on_first) == config_hash(_fan_out_graph(second_log_parent=1))
    assert config_hash(one_each) == config_hash(one_each.clone_with_fresh_ids())


@pytest.mark.asyncio
async def test_compare_detects_rewiring_between_identical_nodes(workflows, versions):
    workflow = await workflows.create("Fan out", _fan_out_graph(second_log_parent=1))
    versions.snapshot(workflow.id)
    await workflows.update(workflow.id, graph=_fan_out_graph(second_log_parent=2))
    versions.snapshot(workflow.id)

    assert versions.compare(workflow.id, "v1", "v2").same_config is False


@pytest.mark.asyncio
@pytest.mark.parametrize("split", [-0.1, 1.5, float("nan")])
async def test_start_experiment_rejects_split_outside_unit_interval(workflows, versions, split):
    workflow = await workflows.create("Flow")
    versions.snapshot(workflow.id)
    versions.snapshot(workflow.id)

    with pytest.raises(InvalidArgument):
        versions.start_experiment(workflow.id, "v1", "v2", split)
    assert versions.list_experiments(workflow.id) == []


@pytest.mark.asyncio
async def test_snapshots_do_not_share_config_with_live_workflow(workflows, versions):
    graph, _ = Graph().with_node(NodeKind.TRIGGER, "T", configured=True, config={"payload": {"qty": 1}})
    workflow = await workflows.create("Flow", graph)
    snapshot = versions.snapshot(workflow.id)

    workflows.get(workflow.id).graph.nodes[0].config["payload"]["qty"] = 99
    assert snapshot.graph.nodes[0].config["payload"]["qty"] == 1

    restored = await versions.rollback(workflow.id, "v1")
    restored.graph.nodes[0].config["payload"]["qty"] = 7
    assert versions.get_version(workflow.id, "v1").graph.nodes[0].config["payload"]["qty"] == 1
    assert versions.get_version(workflow.id, "v2").graph.nodes[0].config["payload"]["qty"] == 1
