"""FastAPI dependencies for owner resolution and service wiring."""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Header

from app.core.exceptions import AuthorizationError
from app.services.rag_pipeline import RAGPipeline


async def get_owner_id(
    x_owner_id: Annotated[str | None, Header()] = None,
) -> uuid.UUID:
    """
    Resolve the authenticated owner from the ``X-Owner-Id`` header.

    Sign-in happens upstream; the gateway forwards the user id here.
    """
    if not x_owner_id:
        raise AuthorizationError("Missing X-Owner-Id header")
    try:
        return uuid.UUID(x_owner_id)
    except ValueError as e:
        raise AuthorizationError("X-Owner-Id is not a valid UUID") from e


def get_pipeline() -> RAGPipeline:
    """FastAPI dependency that returns a RAGPipeline instance."""
    return RAGPipeline()


OwnerId = Annotated[uuid.UUID, Depends(get_owner_id)]
Pipeline = Annotated[RAGPipeline, Depends(get_pipeline)]
