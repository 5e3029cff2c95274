"""FastAPI application factory.

Launch:
    lectio serve --port 8000
or
    uvicorn lectio.api.app:create_app --factory
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lectio.api import admin, chat
from lectio.config import LectioConfig, load_config
from lectio.db.connection import Database
from lectio.db.schema import initialize
from lectio.db.vectors import VectorIndex
from lectio.ingest.fetcher import Fetcher
from lectio.rag.llm_client import Embedder, GenerationError, make_embedder
from lectio.study.conversations import NotFoundError

logger = logging.getLogger(__name__)


def create_app(
    config: LectioConfig | None = None,
    *,
    embedder: Embedder | None = None,
    fetcher: Fetcher | None = None,
) -> FastAPI:
    """Build the app, initialising the schema and vector table up front.

    Args:
        config: Loaded configuration; defaults to load_config().
        embedder: Override the litellm embedder (tests).
        fetcher: Override the page fetcher used by admin ingestion (tests).
    """
    config = config or load_config()
    database = Database(config.server.db_path)
    with database as conn:
        initialize(conn)
        VectorIndex.for_model(conn, config.embedding.model, config.embedding.dimensions)

    app = FastAPI(
        title="Lectio",
        description="Retrieval-augmented Bible study assistant",
        version="0.1.0",
    )
    app.state.config = config
    app.state.database = database
    app.state.embedder = embedder or make_embedder(config.embedding.model)
    app.state.fetcher = fetcher or Fetcher(
        timeout=config.ingest.timeout, delay_seconds=config.ingest.delay_seconds
    )

    app.include_router(chat.router)
    app.include_router(admin.router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(GenerationError)
    async def generation_failed(request: Request, exc: GenerationError):
        logger.error("Generation failed: %s", exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def bad_request(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    logger.info("Lectio app ready (db=%s, env=%s)", database.db_path, config.server.environment)
    return app
