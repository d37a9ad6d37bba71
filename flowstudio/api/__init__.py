"""
API components

FastAPI routers and request/response models for workflows, simulation and versioning.
"""

from .dependencies import Services, get_services
from .routes import router
from .simulation import router as simulation_router
from .versioning import router as versioning_router

__all__ = ["router", "simulation_router", "versioning_router", "Services", "get_services"]
