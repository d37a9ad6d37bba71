from typing import Dict, Any, List, Optional, Tuple
from collections import deque
from datetime import datetime, timedelta, timezone
import json
import logging
import zlib

from flowstudio.errors import AtEnd, AtStart, InvalidGraph, InvalidTransition
from flowstudio.graph import Edge, Graph, Node, NodeKind, new_id, normalize_branch, validate_graph

from .actions import ActionRegistry
from .conditions import ConditionEvaluator
from .models import (
    ExecutionState, MessageFlowEntry, NodeStatus, PlannedStep,
    SimulationStatus, StepFrame
)

logger = logging.getLogger(__name__)

TRIGGER_DURATION_MS = 10
CONDITION_DURATION_MS = 5
JITTER_MS = 50
PREVIEW_LENGTH = 80

MESSAGE_TYPES = {
    NodeKind.TRIGGER: "event",
    NodeKind.CONDITION: "decision",
    NodeKind.ACTION: "result",
}


class SimulationEngine:
    """
    Step-wise, replayable simulator over a validated workflow graph.

    ``start`` computes the whole execution order up front; stepping only
    moves a cursor over that plan, so stepping backward is an exact inverse
    of stepping forward and run_to_completion replays the same steps.
    """

    def __init__(
        self,
        actions: Optional[ActionRegistry] = None,
        conditions: Optional[ConditionEvaluator] = None,
    ):
        self.actions = actions or ActionRegistry()
        self.conditions = conditions or ConditionEvaluator()

    def start(
        self,
        workflow_id: str,
        graph: Graph,
        inputs: Optional[Dict[str, Any]] = None,
        started_at: Optional[datetime] = None,
    ) -> ExecutionState:
        """Validate the graph, plan the run and return a state positioned at step 0."""
        result = validate_graph(graph)
        if not result.valid:
            raise InvalidGraph(result.errors)

        inputs = dict(inputs or {})
        started_at = started_at or datetime.now(timezone.utc)
        plan = self.plan(graph, inputs, started_at)

        planned = {step.node_id for step in plan}
        node_status = {step.node_id: NodeStatus.PENDING for step in plan}
        for node in graph.nodes:
            if node.id not in planned:
                node_status[node.id] = NodeStatus.SKIPPED

        state = ExecutionState(
            simulation_id=new_id("sim"),
            workflow_id=workflow_id,
            status=SimulationStatus.RUNNING,
            current_step=0,
            total_steps=len(plan),
            inputs=inputs,
            plan=plan,
            node_runtime_status=node_status,
            started_at=started_at,
        )
        logger.info(f"[{workflow_id}] simulation {state.simulation_id} started with {len(plan)} steps")
        return state

    def plan(self, graph: Graph, inputs: Dict[str, Any], started_at: datetime) -> List[PlannedStep]:
        """
        Breadth-first execution order from the trigger set.

        Triggers are visited in node order and neighbours in edge insertion
        order. A node is scheduled at most once per run, which bounds cycles.
        Conditions are evaluated here, so only the taken branch is followed.
        """
        context: Dict[str, Any] = dict(inputs)
        queue = deque(t.id for t in graph.triggers())
        scheduled = set(queue)
        clock = started_at
        steps: List[PlannedStep] = []

        while queue:
            node = graph.node(queue.popleft())
            index = len(steps)

            outputs, action, duration = self._execute_node(node, context)
            context.update(outputs)
            outcome, taken = self._select_edges(graph, node, context)

            finished = clock + timedelta(milliseconds=duration)
            preview = f"branch: {outcome}" if outcome is not None else _preview(outputs)
            messages = [
                MessageFlowEntry(
                    step=index,
                    edge_id=edge.id,
                    source=node.id,
                    target=edge.target,
                    label=edge.label,
                    type=MESSAGE_TYPES[node.kind],
                    timestamp=finished,
                    data_preview=preview,
                )
                for edge in taken
            ]
            steps.append(PlannedStep(
                index=index,
                node_id=node.id,
                label=node.label,
                kind=node.kind,
                action=action,
                duration_ms=duration,
                started_at=clock,
                finished_at=finished,
                outcome=outcome,
                outputs=outputs,
                messages=messages,
            ))
            clock = finished

            for edge in taken:
                if edge.target not in scheduled:
                    scheduled.add(edge.target)
                    queue.append(edge.target)

        return steps

    def step_forward(self, state: ExecutionState) -> ExecutionState:
        """Apply the next planned step. Raises AtEnd when the plan is exhausted."""
        if state.at_end:
            raise AtEnd()
        self._apply_next(state)
        return state

    def step_backward(self, state: ExecutionState) -> ExecutionState:
        """Undo the most recent step. Raises AtStart at step 0."""
        if state.current_step == 0 or not state.history:
            raise AtStart()

        frame = state.history[-1]
        del state.message_flow[frame.message_count:]
        del state.execution_timeline[frame.timeline_count:]
        state.node_runtime_status[frame.node_id] = frame.node_status_before
        state.status = frame.status_before
        state.current_step -= 1
        state.history.pop()
        return state

    def run_to_completion(self, state: ExecutionState) -> ExecutionState:
        while not state.at_end:
            self._apply_next(state)
        return state

    def pause(self, state: ExecutionState) -> ExecutionState:
        if state.status == SimulationStatus.COMPLETED:
            raise InvalidTransition("a completed simulation cannot be paused")
        state.status = SimulationStatus.PAUSED
        return state

    def resume(self, state: ExecutionState) -> ExecutionState:
        if state.status == SimulationStatus.COMPLETED:
            raise InvalidTransition("a completed simulation cannot be resumed")
        state.status = SimulationStatus.RUNNING
        return state

    def _apply_next(self, state: ExecutionState) -> None:
        step = state.plan[state.current_step]
        frame = StepFrame(
            status_before=state.status,
            node_id=step.node_id,
            node_status_before=state.node_runtime_status.get(step.node_id, NodeStatus.PENDING),
            message_count=len(state.message_flow),
            timeline_count=len(state.execution_timeline),
        )
        timeline_entry = step.timeline_entry()

        # Commit point: nothing below can fail
        state.history.append(frame)
        state.message_flow.extend(step.messages)
        state.execution_timeline.append(timeline_entry)
        state.node_runtime_status[step.node_id] = NodeStatus.COMPLETED
        state.current_step += 1
        if state.at_end:
            state.status = SimulationStatus.COMPLETED

    def _execute_node(self, node: Node, context: Dict[str, Any]) -> Tuple[Dict[str, Any], str, int]:
        """Simulate one node: returns its outputs, an action name and a duration in ms."""
        jitter = zlib.crc32(node.id.encode("utf-8")) % JITTER_MS
        config = node.config

        if node.kind == NodeKind.TRIGGER:
            action = f"trigger:{config.get('triggerType', 'manual')}"
            payload = config.get("payload", {})
            if not isinstance(payload, dict):
                raise _invalid_config(node, "trigger payload must be an object")
            return dict(payload), action, TRIGGER_DURATION_MS + jitter

        if node.kind == NodeKind.CONDITION:
            action = f"evaluate:{config.get('conditionType', 'comparison')}"
            return {}, action, CONDITION_DURATION_MS + jitter

        action_type = config.get("actionType", ActionRegistry.FALLBACK)
        if not isinstance(action_type, str):
            raise _invalid_config(node, "actionType must be a string")
        simulated = self.actions.get(action_type)
        try:
            outputs = dict(simulated.handler(config, context) or {})
        except (TypeError, ValueError) as e:
            raise _invalid_config(node, str(e))
        return outputs, action_type, simulated.base_duration_ms + jitter

    def _select_edges(self, graph: Graph, node: Node, context: Dict[str, Any]) -> Tuple[Optional[str], List[Edge]]:
        outgoing = graph.outgoing(node.id)
        if node.kind != NodeKind.CONDITION:
            return None, outgoing

        try:
            outcome = self.conditions.evaluate(node.config, context)
        except (TypeError, ValueError, AttributeError) as e:
            raise _invalid_config(node, str(e))
        if len(outgoing) == 1 and outgoing[0].label is None:
            return outcome, outgoing

        taken = [e for e in outgoing if normalize_branch(e.label) == outcome]
        if not taken:
            logger.info(f"Condition {node.id} produced '{outcome}' which matches no outgoing edge; branch ends")
        return outcome, taken


def _invalid_config(node: Node, reason: str) -> InvalidGraph:
    message = f"{node.kind.value} node {node.id} ({node.label}) has unusable config: {reason}"
    logger.warning(message)
    return InvalidGraph([message])


def _preview(outputs: Dict[str, Any]) -> str:
    if not outputs:
        return ""
    text = json.dumps(outputs, sort_keys=True, default=str)
    return text if len(text) <= PREVIEW_LENGTH else text[:PREVIEW_LENGTH - 3] + "..."
