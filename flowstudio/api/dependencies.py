from typing import Optional

from fastapi import Request

from flowstudio.config import Settings
from flowstudio.engine import SimulationManager
from flowstudio.locks import KeyedLocks
from flowstudio.versioning import VersionService
from flowstudio.workflows import IdempotencyCache, WorkflowManager


class Services:
    """The core services one application instance works with"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.workflows = WorkflowManager(
            locks=KeyedLocks(settings.lock_timeout_seconds),
            idempotency=IdempotencyCache(settings.idempotency_cache_size),
        )
        self.simulations = SimulationManager(
            self.workflows,
            locks=KeyedLocks(settings.lock_timeout_seconds),
        )
        self.versions = VersionService(self.workflows)


def get_services(request: Request) -> Services:
    return request.app.state.services


def idempotency_key(request: Request) -> Optional[str]:
    return request.headers.get("Idempotency-Key")
