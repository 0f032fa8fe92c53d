"""
Grounded Chat RAG Service - Application Entry Point

FastAPI application serving per-owner document ingestion and grounded
chat answers.

Start locally:
    uvicorn app.main:app --host 0.0.0.0 --port 8001 --reload
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.rag import router as rag_router
from app.core.config import settings
from app.core.database import check_connection, dispose_engine
from app.core.exceptions import RAGError, ServiceError
from app.core.logging import setup_logging
from app.services.embeddings import LocalEmbeddingClient

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        Validate database connectivity (blocks startup on failure).

    Shutdown:
        1. Release the local embedding model, if one was loaded.
        2. Dispose database engine.
    """
    logger.info("Starting grounded chat service...")
    logger.info(
        "Embedding backend: %s (%s, dim=%d)",
        settings.EMBEDDING_BACKEND,
        settings.EMBEDDING_MODEL,
        settings.EMBEDDING_DIMENSION,
    )

    try:
        await check_connection()
        logger.info("Database connection verified")
    except Exception:
        logger.exception("Database connection failed")
        raise

    yield

    LocalEmbeddingClient.reset()
    await dispose_engine()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Grounded Chat RAG",
    description="Owner-scoped document ingestion and retrieval-grounded chat.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(rag_router, prefix="/api/v1/rag", tags=["RAG"])


@app.exception_handler(RAGError)
async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    """
    Render pipeline errors as ``{"error": code, "detail": message}``.

    Upstream failures additionally carry ``service``, ``upstream_status``
    and ``upstream_detail``.
    """
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    content: dict[str, object] = {"error": exc.code, "detail": exc.message}
    if isinstance(exc, ServiceError):
        content["service"] = exc.service
        content["upstream_status"] = exc.status
        content["upstream_detail"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check for load balancers and orchestrators."""
    return {
        "status": "ok",
        "service": "grounded-chat-rag",
        "environment": os.getenv("ENVIRONMENT", "local"),
    }
