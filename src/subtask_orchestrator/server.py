"""FastAPI application exposing the orchestration engine over HTTP."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .api.router import create_orchestration_router
from .errors import OrchestrationError
from .orchestrator.service import OrchestrationEngine, create_engine


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
    engine_factory: Optional[Callable[[Path], OrchestrationEngine]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        project_dir: Default project directory.
        enable_cors: Whether to enable CORS.
        engine_factory: Builds an engine for a project directory; defaults to ``create_engine``.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Subtask Orchestrator",
        description="Plan tasks into sub-tasks and track their execution",
        version="1.0.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.default_project_dir = project_dir
    app.state.engines = {}
    factory = engine_factory or create_engine
    engines_lock = threading.Lock()

    def _resolve_engine(project_dir_param: Optional[str] = None) -> OrchestrationEngine:
        if project_dir_param:
            target = Path(project_dir_param).expanduser().resolve()
        elif app.state.default_project_dir:
            target = Path(app.state.default_project_dir).resolve()
        else:
            target = Path.cwd().resolve()
        key = str(target)
        with engines_lock:
            engine = app.state.engines.get(key)
            if engine is None:
                engine = factory(target)
                app.state.engines[key] = engine
        return engine

    @app.exception_handler(OrchestrationError)
    async def _orchestration_error(request: Request, exc: OrchestrationError) -> JSONResponse:
        if exc.status_code >= 424:
            logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(create_orchestration_router(_resolve_engine))
    return app
