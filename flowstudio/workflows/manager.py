from typing import Callable, Dict, List, Optional
import logging

from flowstudio.errors import Conflict, InvalidGraph, InvalidTransition, NotFound
from flowstudio.graph import Graph, new_id, validate_graph
from flowstudio.locks import KeyedLocks

from .idempotency import IdempotencyCache
from .models import AuditEntry, Workflow, WorkflowStatus, utc_now

logger = logging.getLogger(__name__)

DeleteListener = Callable[[str], None]


class WorkflowManager:
    """
    Create/update/publish/activate/deactivate/duplicate/delete over workflow records.

    Records live in memory; every write for one workflow id runs under that
    id's lock, checks the optional ``expected_version`` and bumps ``version``.
    Writes carrying an idempotency key are applied at most once per key.
    """

    def __init__(
        self,
        locks: Optional[KeyedLocks] = None,
        idempotency: Optional[IdempotencyCache] = None,
    ):
        self.workflows: Dict[str, Workflow] = {}
        self.audit: List[AuditEntry] = []
        self.locks = locks or KeyedLocks()
        self.idempotency = idempotency or IdempotencyCache()
        self._delete_listeners: List[DeleteListener] = []

    def add_delete_listener(self, listener: DeleteListener) -> None:
        """Register a callback invoked with the workflow id after a delete."""
        self._delete_listeners.append(listener)

    # -- reads -------------------------------------------------------------

    def get(self, workflow_id: str) -> Workflow:
        workflow = self.workflows.get(workflow_id)
        if workflow is None or workflow.deleted_at is not None:
            raise NotFound(f"workflow {workflow_id} not found", {"workflow_id": workflow_id})
        return workflow

    def list(
        self,
        status: Optional[WorkflowStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Workflow]:
        """Live workflows, newest first."""
        items = [
            wf for wf in reversed(list(self.workflows.values()))
            if wf.deleted_at is None and (status is None or wf.status == status)
        ]
        return items[offset:offset + limit]

    def audit_log(self, workflow_id: str) -> List[AuditEntry]:
        return [entry for entry in self.audit if entry.workflow_id == workflow_id]

    # -- writes ------------------------------------------------------------

    async def create(
        self,
        name: str,
        graph: Optional[Graph] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Workflow:
        """Save a new draft. The graph must be well-formed but need not be executable."""
        cached = self.idempotency.get("create", idempotency_key)
        if cached is not None:
            return cached

        graph = graph or Graph()
        graph.check_integrity()

        workflow = Workflow.create(name=name.strip(), graph=graph, description=description)
        self.workflows[workflow.id] = workflow
        self._record(workflow.id, "workflow.created", {"name": workflow.name})
        self.idempotency.remember("create", idempotency_key, workflow)
        logger.info(f"[{workflow.id}] created draft '{workflow.name}'")
        return workflow

    async def update(
        self,
        workflow_id: str,
        graph: Optional[Graph] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        expected_version: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Workflow:
        """
        Replace the stored graph (and optionally name/description).

        Drafts and inactive workflows accept any well-formed graph; an active
        workflow only accepts a graph that still validates.
        """
        operation = f"update:{workflow_id}"
        async with self.locks.hold(workflow_id):
            cached = self.idempotency.get(operation, idempotency_key)
            if cached is not None:
                return cached

            current = self._get_for_write(workflow_id, expected_version)
            changes = {}
            if graph is not None:
                graph.check_integrity()
                if current.status == WorkflowStatus.ACTIVE:
                    self._require_valid(graph)
                changes["graph"] = graph
            if name is not None:
                changes["name"] = name.strip()
            if description is not None:
                changes["description"] = description

            updated = self._save(current, **changes)
            self._record(workflow_id, "workflow.updated", {"fields": sorted(changes)})
            self.idempotency.remember(operation, idempotency_key, updated)
            return updated

    async def publish(
        self,
        workflow_id: str,
        expected_version: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Workflow:
        """Validate and make the workflow active, whatever its current state."""
        operation = f"publish:{workflow_id}"
        async with self.locks.hold(workflow_id):
            cached = self.idempotency.get(operation, idempotency_key)
            if cached is not None:
                return cached

            current = self._get_for_write(workflow_id, expected_version)
            self._require_valid(current.graph)
            now = utc_now()
            published = self._save(current, status=WorkflowStatus.ACTIVE, published_at=now)
            self._record(workflow_id, "workflow.published", {})
            self.idempotency.remember(operation, idempotency_key, published)
            logger.info(f"[{workflow_id}] published (version {published.version})")
            return published

    async def activate(
        self,
        workflow_id: str,
        expected_version: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Workflow:
        """Re-enable an inactive workflow; drafts must be published first."""
        operation = f"activate:{workflow_id}"
        async with self.locks.hold(workflow_id):
            cached = self.idempotency.get(operation, idempotency_key)
            if cached is not None:
                return cached

            current = self._get_for_write(workflow_id, expected_version)
            if current.status == WorkflowStatus.DRAFT:
                raise InvalidTransition(
                    f"workflow {workflow_id} is a draft; publish it before activating",
                    {"status": current.status.value},
                )
            if current.status == WorkflowStatus.ACTIVE:
                self.idempotency.remember(operation, idempotency_key, current)
                return current

            self._require_valid(current.graph)
            activated = self._save(current, status=WorkflowStatus.ACTIVE)
            self._record(workflow_id, "workflow.activated", {})
            self.idempotency.remember(operation, idempotency_key, activated)
            logger.info(f"[{workflow_id}] activated")
            return activated

    async def deactivate(
        self,
        workflow_id: str,
        expected_version: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> Workflow:
        operation = f"deactivate:{workflow_id}"
        async with self.locks.hold(workflow_id):
            cached = self.idempotency.get(operation, idempotency_key)
            if cached is not None:
                return cached

            current = self._get_for_write(workflow_id, expected_version)
            if current.status == WorkflowStatus.DRAFT:
                raise InvalidTransition(
                    f"workflow {workflow_id} is a draft and was never active",
                    {"status": current.status.value},
                )
            if current.status == WorkflowStatus.INACTIVE:
                self.idempotency.remember(operation, idempotency_key, current)
                return current

            deactivated = self._save(current, status=WorkflowStatus.INACTIVE)
            self._record(workflow_id, "workflow.deactivated", {})
            self.idempotency.remember(operation, idempotency_key, deactivated)
            logger.info(f"[{workflow_id}] deactivated")
            return deactivated

    async def duplicate(self, workflow_id: str, idempotency_key: Optional[str] = None) -> Workflow:
        """Copy a workflow into a new draft with fresh node and edge ids."""
        operation = f"duplicate:{workflow_id}"
        async with self.locks.hold(workflow_id):
            cached = self.idempotency.get(operation, idempotency_key)
            if cached is not None:
                return cached

            original = self.get(workflow_id)
            copy = Workflow.create(
                name=f"{original.name} (Copy)",
                graph=original.graph.clone_with_fresh_ids(),
                description=original.description,
            )
            self.workflows[copy.id] = copy
            self._record(copy.id, "workflow.duplicated", {"original_id": workflow_id})
            self.idempotency.remember(operation, idempotency_key, copy)
            logger.info(f"[{workflow_id}] duplicated as {copy.id}")
            return copy

    async def delete(self, workflow_id: str, idempotency_key: Optional[str] = None) -> Workflow:
        """Soft-delete the workflow and invalidate anything attached to it."""
        operation = f"delete:{workflow_id}"
        async with self.locks.hold(workflow_id):
            cached = self.idempotency.get(operation, idempotency_key)
            if cached is not None:
                return cached

            current = self.get(workflow_id)
            deleted = self._save(current, deleted_at=utc_now())
            self._record(workflow_id, "workflow.deleted", {})
            self.idempotency.remember(operation, idempotency_key, deleted)

        for listener in self._delete_listeners:
            listener(workflow_id)
        logger.info(f"[{workflow_id}] deleted")
        return deleted

    # -- helpers -----------------------------------------------------------

    def _get_for_write(self, workflow_id: str, expected_version: Optional[int]) -> Workflow:
        current = self.get(workflow_id)
        if expected_version is not None and expected_version != current.version:
            logger.warning(
                f"[{workflow_id}] write rejected: expected version {expected_version}, "
                f"stored version {current.version}"
            )
            raise Conflict(
                f"workflow {workflow_id} was modified concurrently",
                {"expected_version": expected_version, "current_version": current.version},
            )
        return current

    def _require_valid(self, graph: Graph) -> None:
        result = validate_graph(graph)
        if not result.valid:
            raise InvalidGraph(result.errors)

    def _save(self, current: Workflow, **changes) -> Workflow:
        updated = current.model_copy(
            update={**changes, "version": current.version + 1, "updated_at": utc_now()}
        )
        self.workflows[current.id] = updated
        return updated

    def _record(self, workflow_id: str, action: str, details: Dict) -> None:
        self.audit.append(AuditEntry(
            id=new_id("audit"),
            workflow_id=workflow_id,
            action=action,
            details=details,
            created_at=utc_now(),
        ))
