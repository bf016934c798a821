import logging
from collections.abc import Callable
from typing import Any

from fastapi import FastAPI

from backend.config import get_settings
from backend.routes import router
from backend.sessions import init_sessions
from dungeon_crawl.collaborators import Collaborators


def create_app(
    settings: dict[str, Any] | None = None,
    collaborators_factory: Callable[[], Collaborators] | None = None,
) -> FastAPI:
    resolved = settings or get_settings()
    init_sessions(resolved, collaborators_factory)
    if not resolved.get("llm_provider_url"):
        logging.getLogger(__name__).warning(
            "LLM_PROVIDER_URL not set; every collaborator will use its local fallback"
        )

    app = FastAPI(title="Dungeon Crawl")
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn
app = create_app()
