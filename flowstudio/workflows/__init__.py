"""
Workflow lifecycle

Draft/active/inactive workflow records and the manager that owns them.
"""

from .idempotency import IdempotencyCache
from .manager import WorkflowManager
from .models import AuditEntry, Workflow, WorkflowStatus

__all__ = [
    "AuditEntry",
    "IdempotencyCache",
    "Workflow",
    "WorkflowManager",
    "WorkflowStatus",
]
