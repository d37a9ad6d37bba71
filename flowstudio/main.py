from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowstudio.api import Services, router, simulation_router, versioning_router
from flowstudio.config import Settings, get_settings
from flowstudio.errors import FlowStudioError
from flowstudio.templates import default_templates

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def seed_templates(services: Services) -> None:
    for name, description, graph in default_templates():
        workflow = await services.workflows.create(name=name, graph=graph, description=description)
        services.versions.snapshot(workflow.id, "Initial template")


async def handle_core_error(request: Request, exc: FlowStudioError) -> JSONResponse:
    """Turn a typed core error into a JSON body with its status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    services = Services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.seed_templates:
            await seed_templates(services)
            logger.info(f"Seeded {len(services.workflows.workflows)} template workflows")
        yield

    app = FastAPI(
        title=settings.app_name,
        description="Workflow graphs, step-wise simulation and versioning for the operator dashboard",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FlowStudioError, handle_core_error)

    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(simulation_router, prefix=settings.api_prefix)
    app.include_router(versioning_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        prefix = settings.api_prefix
        return {
            "message": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "endpoints": {
                "create_workflow": f"POST {prefix}/workflows",
                "update_workflow": f"PATCH {prefix}/workflows/{{id}}",
                "publish_workflow": f"POST {prefix}/workflows/{{id}}:publish",
                "validate_graph": f"POST {prefix}/workflows/validate",
                "start_simulation": f"POST {prefix}/simulation/start",
                "step_forward": f"POST {prefix}/simulation/step-forward",
                "step_backward": f"POST {prefix}/simulation/step-backward",
                "run_to_completion": f"POST {prefix}/simulation/run-to-completion",
                "reset_simulation": f"DELETE {prefix}/simulation",
                "list_versions": f"GET {prefix}/versioning/versions/{{workflow_id}}",
                "rollback": f"POST {prefix}/versioning/rollback",
                "compare": f"GET {prefix}/versioning/compare",
            },
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
