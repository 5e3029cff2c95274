"""Admin ingestion routes, gated by the X-Admin-Secret header.

With LECTIO_ADMIN_SECRET unset, access is allowed only in the development
environment. Authorization is checked before any ingestion side effect.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from lectio.api.deps import get_config, get_embedder, get_index, get_repo
from lectio.api.schemas import BatchRequest, BookRequest, ChapterRequest
from lectio.config import LectioConfig, admin_secret
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.ingest.books import NT_BOOKS
from lectio.ingest.pipeline import IngestionPipeline
from lectio.rag.llm_client import Embedder

logger = logging.getLogger(__name__)


def require_admin(
    config: LectioConfig = Depends(get_config),
    x_admin_secret: str | None = Header(default=None),
) -> None:
    secret = admin_secret()
    if secret is None:
        if config.is_development:
            return
        raise HTTPException(status_code=403, detail="Unauthorized")
    if not x_admin_secret or not hmac.compare_digest(x_admin_secret, secret):
        logger.warning("Rejected admin request with missing or wrong secret")
        raise HTTPException(status_code=403, detail="Unauthorized")


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


def get_pipeline(
    request: Request,
    repo: Repository = Depends(get_repo),
    index: VectorIndex = Depends(get_index),
    embedder: Embedder = Depends(get_embedder),
    config: LectioConfig = Depends(get_config),
) -> IngestionPipeline:
    return IngestionPipeline(
        repo, index, embedder, fetcher=request.app.state.fetcher, config=config.ingest
    )


@router.get("/ingest/status")
def ingest_status(pipeline: IngestionPipeline = Depends(get_pipeline)):
    return pipeline.status()


@router.post("/ingest/seed")
def ingest_seed(pipeline: IngestionPipeline = Depends(get_pipeline)):
    inserted, total = pipeline.seed()
    return {
        "success": True,
        "inserted": inserted,
        "message": f"Seeded {total} document records for {len(NT_BOOKS)} NT books",
    }


@router.post("/ingest/chapter")
def ingest_chapter(req: ChapterRequest, pipeline: IngestionPipeline = Depends(get_pipeline)):
    return pipeline.index_chapter(req.book, req.chapter).to_dict()


@router.post("/ingest/book")
def ingest_book(req: BookRequest, pipeline: IngestionPipeline = Depends(get_pipeline)):
    report = pipeline.index_book(req.book)
    return {"book": req.book, **report.to_dict()}


@router.post("/ingest/batch")
def ingest_batch(req: BatchRequest, pipeline: IngestionPipeline = Depends(get_pipeline)):
    report = pipeline.index_batch(req.limit)
    if not report.processed:
        return {"message": "No pending documents", **report.to_dict()}
    return report.to_dict()


@router.delete("/ingest/reset")
def ingest_reset(
    config: LectioConfig = Depends(get_config),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    if not config.is_development:
        raise HTTPException(status_code=403, detail="Only allowed in development")
    pipeline.reset()
    return {"success": True, "message": "All ingestion data reset"}
