import asyncio

import pytest

from flowstudio.errors import Conflict, InvalidGraph, InvalidReference, InvalidTransition, NotFound
from flowstudio.graph import Graph, NodeKind
from flowstudio.workflows import IdempotencyCache, WorkflowStatus


@pytest.mark.asyncio
async def test_create_saves_draft_even_if_not_executable(workflows):
    graph, _ = Graph().with_node(NodeKind.ACTION, "Lonely")

    workflow = await workflows.create("  Draft flow  ", graph)

    assert workflow.name == "Draft flow"
    assert workflow.status == WorkflowStatus.DRAFT
    assert workflow.version == 1
    assert workflows.get(workflow.id) == workflow
    assert [e.action for e in workflows.audit_log(workflow.id)] == ["workflow.created"]


@pytest.mark.asyncio
async def test_create_rejects_dangling_edge(workflows):
    graph = Graph.model_validate({
        "nodes": [{"id": "t", "kind": "trigger", "label": "T"}],
        "edges": [{"id": "e1", "from": "t", "to": "ghost"}],
    })

    with pytest.raises(InvalidReference):
        await workflows.create("Broken", graph)
    assert workflows.list() == []


@pytest.mark.asyncio
async def test_get_unknown_workflow(workflows):
    with pytest.raises(NotFound):
        workflows.get("wf_missing")
    with pytest.raises(NotFound):
        await workflows.update("wf_missing", name="x")


@pytest.mark.asyncio
async def test_update_bumps_version_and_checks_expected_version(workflows, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", Graph())

    updated = await workflows.update(workflow.id, graph=graph, expected_version=1)

    assert updated.version == 2
    assert updated.graph == graph
    assert updated.updated_at >= workflow.updated_at

    with pytest.raises(Conflict) as exc_info:
        await workflows.update(workflow.id, name="Stale", expected_version=1)
    assert exc_info.value.details == {"expected_version": 1, "current_version": 2}
    assert workflows.get(workflow.id).name == "Flow"


@pytest.mark.asyncio
async def test_concurrent_updates_with_same_expected_version(workflows):
    workflow = await workflows.create("Flow", Graph())

    results = await asyncio.gather(
        workflows.update(workflow.id, name="First", expected_version=1),
        workflows.update(workflow.id, name="Second", expected_version=1),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, Conflict)]
    saved = [r for r in results if not isinstance(r, Exception)]
    assert len(conflicts) == 1
    assert len(saved) == 1
    assert workflows.get(workflow.id).version == 2


@pytest.mark.asyncio
async def test_publish_requires_valid_graph(workflows, ambiguous_graph):
    graph, nodes = ambiguous_graph
    workflow = await workflows.create("Ambiguous", graph)

    with pytest.raises(InvalidGraph) as exc_info:
        await workflows.publish(workflow.id)

    assert exc_info.value.errors == [f"ambiguous branch from condition node {nodes['C'].id}"]
    assert workflows.get(workflow.id).status == WorkflowStatus.DRAFT


@pytest.mark.asyncio
async def test_publish_activates(workflows, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph)

    published = await workflows.publish(workflow.id, expected_version=1)

    assert published.status == WorkflowStatus.ACTIVE
    assert published.published_at is not None
    assert published.version == 2


@pytest.mark.asyncio
async def test_active_workflow_only_accepts_valid_graphs(workflows, branching_graph, ambiguous_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph)
    await workflows.publish(workflow.id)

    with pytest.raises(InvalidGraph):
        await workflows.update(workflow.id, graph=ambiguous_graph[0])

    assert workflows.get(workflow.id).graph == graph


@pytest.mark.asyncio
async def test_activate_and_deactivate_transitions(workflows, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph)

    with pytest.raises(InvalidTransition):
        await workflows.activate(workflow.id)
    with pytest.raises(InvalidTransition):
        await workflows.deactivate(workflow.id)

    await workflows.publish(workflow.id)
    inactive = await workflows.deactivate(workflow.id)
    assert inactive.status == WorkflowStatus.INACTIVE

    again = await workflows.deactivate(workflow.id)
    assert again.version == inactive.version

    active = await workflows.activate(workflow.id)
    assert active.status == WorkflowStatus.ACTIVE
    assert [e.action for e in workflows.audit_log(workflow.id)] == [
        "workflow.created",
        "workflow.published",
        "workflow.deactivated",
        "workflow.activated",
    ]


@pytest.mark.asyncio
async def test_duplicate_is_independent(workflows, branching_graph):
    graph, nodes = branching_graph
    original = await workflows.create("Flow", graph, description="original")
    await workflows.publish(original.id)

    copy = await workflows.duplicate(original.id)

    assert copy.name == "Flow (Copy)"
    assert copy.status == WorkflowStatus.DRAFT
    assert copy.version == 1
    assert {n.id for n in copy.graph.nodes}.isdisjoint({n.id for n in graph.nodes})

    copy_a = next(n for n in copy.graph.nodes if n.label == "A")
    await workflows.update(copy.id, graph=copy.graph.remove_node(copy_a.id))

    assert workflows.get(original.id).graph == graph
    assert workflows.get(original.id).graph.has_node(nodes["A"].id)
    assert workflows.audit_log(copy.id)[0].details == {"original_id": original.id}


@pytest.mark.asyncio
async def test_idempotent_create(workflows):
    first = await workflows.create("Flow", idempotency_key="req-1")
    second = await workflows.create("Flow", idempotency_key="req-1")

    assert first.id == second.id
    assert len(workflows.list()) == 1


@pytest.mark.asyncio
async def test_idempotency_key_is_scoped_per_operation(workflows, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph, idempotency_key="same")

    published = await workflows.publish(workflow.id, idempotency_key="same")
    replay = await workflows.publish(workflow.id, idempotency_key="same")

    assert published.status == WorkflowStatus.ACTIVE
    assert replay == published
    assert workflows.get(workflow.id).version == 2


def test_idempotency_cache_evicts_oldest():
    cache = IdempotencyCache(max_entries=2)
    cache.remember("create", "a", 1)
    cache.remember("create", "b", 2)
    cache.remember("create", "c", 3)

    assert cache.get("create", "a") is None
    assert cache.get("create", "c") == 3
    assert cache.get("publish", "c") is None
    assert cache.get("create", None) is None
    assert len(cache) == 2


@pytest.mark.asyncio
async def test_delete_hides_workflow(workflows):
    workflow = await workflows.create("Flow")

    deleted = await workflows.delete(workflow.id)

    assert deleted.deleted_at is not None
    with pytest.raises(NotFound):
        workflows.get(workflow.id)
    with pytest.raises(NotFound):
        await workflows.delete(workflow.id)
    assert workflows.list() == []
    assert workflows.audit_log(workflow.id)[-1].action == "workflow.deleted"


@pytest.mark.asyncio
async def test_list_filters_and_pages(workflows, branching_graph):
    graph, _ = branching_graph
    first = await workflows.create("First", graph)
    second = await workflows.create("Second", graph)
    third = await workflows.create("Third", graph)
    await workflows.publish(second.id)

    assert [w.id for w in workflows.list()] == [third.id, second.id, first.id]
    assert [w.id for w in workflows.list(status=WorkflowStatus.ACTIVE)] == [second.id]
    assert [w.id for w in workflows.list(limit=1, offset=1)] == [second.id]


@pytest.mark.asyncio
async def test_noop_lifecycle_writes_are_remembered_by_key(workflows, branching_graph):
    graph, _ = branching_graph
    workflow = await workflows.create("Flow", graph)
    await workflows.publish(workflow.id)

    already_active = await workflows.activate(workflow.id, idempotency_key="act-1")
    await workflows.deactivate(workflow.id)
    replay = await workflows.activate(workflow.id, idempotency_key="act-1")

    assert replay == already_active
    assert workflows.get(workflow.id).status == WorkflowStatus.INACTIVE

    already_inactive = await workflows.deactivate(workflow.id, idempotency_key="deact-1")
    await workflows.activate(workflow.id)
    assert await workflows.deactivate(workflow.id, idempotency_key="deact-1") == already_inactive
    assert workflows.get(workflow.id).status == WorkflowStatus.ACTIVE
