"""
Typed errors raised by the flowstudio core.

Every error carries a stable ``code`` and the HTTP status the API layer
should answer with. The exception handler in ``flowstudio.main`` converts
them into JSON responses, so none of them leaves the service uncaught.
"""

from typing import Any, Dict, List, Optional


class FlowStudioError(Exception):
    """Base class for all core errors"""

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class InvalidReference(FlowStudioError):
    """An edge endpoint does not resolve to a node of the same graph."""

    code = "invalid_reference"
    status_code = 422


class SelfLoop(FlowStudioError):
    code = "self_loop"
    status_code = 422


class DuplicateId(FlowStudioError):
    code = "duplicate_id"
    status_code = 422


class InvalidGraph(FlowStudioError):
    """The graph failed validation; ``errors`` holds the validator messages."""

    code = "invalid_graph"
    status_code = 422

    def __init__(self, errors: List[str], message: str = "graph failed validation"):
        super().__init__(message, {"errors": list(errors)})
        self.errors = list(errors)


class NotFound(FlowStudioError):
    code = "not_found"
    status_code = 404


class Conflict(FlowStudioError):
    """Optimistic-lock mismatch; re-fetch and re-apply."""

    code = "conflict"
    status_code = 409


class InvalidTransition(FlowStudioError):
    code = "invalid_transition"
    status_code = 409


class AtStart(FlowStudioError):
    code = "at_start"
    status_code = 409

    def __init__(self, message: str = "simulation is already at the first step"):
        super().__init__(message)


class AtEnd(FlowStudioError):
    code = "at_end"
    status_code = 409

    def __init__(self, message: str = "simulation is already at the last step"):
        super().__init__(message)


class InvalidArgument(FlowStudioError):
    """A core operation was called with a value outside its allowed range."""

    code = "invalid_argument"
    status_code = 422


class ExperimentAlreadyRunning(FlowStudioError):
    code = "experiment_already_running"
    status_code = 409


__all__ = [
    "FlowStudioError",
    "InvalidReference",
    "SelfLoop",
    "DuplicateId",
    "InvalidGraph",
    "NotFound",
    "Conflict",
    "InvalidTransition",
    "AtStart",
    "AtEnd",
    "InvalidArgument",
    "ExperimentAlreadyRunning",
]
