"""
main.py
=======
FastAPI application entry point for the brain HTTP adapter.

Run locally:
  uvicorn backend.main:app --reload --port 3000
  # or
  brain-serve

The lifespan handler builds the BrainService (embedding model, ChromaDB
collection, generation client) once at startup so nothing expensive is
re-created per request. Route handlers only (de)serialise and map error
kinds to status codes.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.api.health import router as health_router
from backend.api.search import router as search_router
from backend.api.sources import router as sources_router
from backend.schemas.response import ErrorResponse
from brain.config import Settings
from brain.errors import (
    BrainError,
    DimensionMismatch,
    EmbeddingError,
    GenerationUnavailable,
    IngestionPartialFailure,
    QueryError,
    StorageError,
)
from brain.service import BrainService

logger = logging.getLogger(__name__)

# Most specific first: DimensionMismatch is also a StorageError.
_STATUS_BY_ERROR = [
    (DimensionMismatch,       409),
    (QueryError,              400),
    (IngestionPartialFailure, 422),
    (EmbeddingError,          422),
    (GenerationUnavailable,   503),
    (StorageError,            500),
]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service before the first request unless one was injected."""
    owned = getattr(app.state, "service", None) is None
    if owned:
        configure_logging(app.state.settings.log_level)
        logger.info("brain backend starting up…")
        app.state.service = BrainService(app.state.settings)
        logger.info("All components initialised. Ready.")
    yield

    if owned:
        app.state.service.close()
        logger.info("brain backend shutting down.")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

async def _brain_error_handler(request: Request, exc: BrainError) -> JSONResponse:
    status_code = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    body = ErrorResponse(error=type(exc).__name__, detail=exc.message, details=exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    service: Optional[BrainService] = None,
) -> FastAPI:
    settings = settings or (service.settings if service else Settings.from_env())

    app = FastAPI(
        title       = "brain API",
        description = (
            "Index code repositories and documentation, search them by "
            "semantic similarity and answer questions with cited context."
        ),
        version     = "1.0.0",
        docs_url    = "/docs",
        redoc_url   = "/redoc",
        lifespan    = lifespan,
    )
    app.state.settings = settings
    app.state.service = service

    # ── CORS ──────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins = settings.server.cors_origins,
        allow_methods = ["*"],
        allow_headers = ["*"],
    )

    app.add_exception_handler(BrainError, _brain_error_handler)

    # ── Routers ───────────────────────────────────────────────────────────
    app.include_router(health_router)
    app.include_router(search_router)
    app.include_router(sources_router)

    return app


def serve() -> None:
    """Console entry point: run the app with uvicorn on the configured address."""
    import uvicorn  # type: ignore

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.server.host, port=settings.server.port)


app = create_app()


if __name__ == "__main__":
    serve()
