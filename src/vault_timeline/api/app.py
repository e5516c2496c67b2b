"""FastAPI application factory for the timeline REST API."""

from fastapi import APIRouter, FastAPI

from vault_timeline.api.task_routes import register_task_routes
from vault_timeline.api.timeline_routes import register_timeline_routes


def create_app(cache) -> FastAPI:
    """Build and return a FastAPI app wired to the given VaultCache."""
    app = FastAPI(title="vault-timeline", docs_url="/api/docs", openapi_url="/api/openapi.json")

    api = APIRouter(prefix="/api")
    register_task_routes(api, cache)
    register_timeline_routes(api, cache)
    app.include_router(api)

    return app
