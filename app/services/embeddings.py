"""
Embedding Client

Turns text into fixed-dimension vectors by delegating to an embedding
backend and piping its raw output through the shape normalizer.

Backends:
    - ``huggingface``: Hugging Face Inference feature-extraction endpoint
      over HTTPS (httpx). Returns flat, token-matrix or batched tensors.
    - ``local``: in-process sentence-transformers model, loaded lazily as
      a class-level singleton and run in a worker thread.

Post-condition shared by every backend: each returned vector has exactly
``dimension`` values, otherwise ``DimensionMismatch`` is raised. No retry
is attempted here; callers own the retry policy.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

from app.core.config import settings
from app.core.exceptions import (
    DimensionMismatch,
    FormatError,
    ServiceError,
    ServiceUnavailable,
)
from app.core.http import error_detail
from app.services.normalization import normalize, normalize_batch

logger = logging.getLogger(__name__)


class EmbeddingClient(ABC):
    """
    Base class for embedding backends.

    Subclasses only fetch raw tensors; normalization and the dimension
    check happen here so every backend honours the same contract.
    """

    def __init__(self, dimension: int | None = None) -> None:
        self._dimension = dimension or settings.EMBEDDING_DIMENSION

    @property
    def dimension(self) -> int:
        """Declared output dimension of the embedding model."""
        return self._dimension

    @abstractmethod
    async def _fetch(self, inputs: str | list[str]) -> Any:
        """Return the backend's raw tensor output for ``inputs``."""

    def _check_dimension(self, vector: list[float]) -> list[float]:
        if len(vector) != self._dimension:
            raise DimensionMismatch(expected=self._dimension, actual=len(vector))
        return vector

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            ServiceUnavailable: Backend not configured.
            ServiceError: Backend returned a failure or timed out.
            FormatError: Raw output has an unsupported shape.
            DimensionMismatch: Normalized vector has the wrong length.
        """
        raw = await self._fetch(text)
        return self._check_dimension(normalize(raw))

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts in one backend call, preserving order."""
        if not texts:
            return []
        raw = await self._fetch(list(texts))
        return [self._check_dimension(v) for v in normalize_batch(raw, len(texts))]


class HuggingFaceEmbeddingClient(EmbeddingClient):
    """
    Hugging Face Inference API client (feature-extraction pipeline).

    Usage::

        client = HuggingFaceEmbeddingClient()
        vector = await client.embed("reset your password regularly")
        assert len(vector) == 384

    Args:
        token: API token (default ``HF_TOKEN``).
        model: Model repository id (default ``EMBEDDING_MODEL``).
        base_url: Inference router base URL.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        token: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        dimension: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(dimension)
        self._token = token or settings.HF_TOKEN
        self._model = model or settings.EMBEDDING_MODEL
        self._base_url = (base_url or settings.HF_INFERENCE_URL).rstrip("/")
        self._timeout = timeout or settings.EMBEDDING_TIMEOUT
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._model}/pipeline/feature-extraction"

    async def _fetch(self, inputs: str | list[str]) -> Any:
        if not self._token:
            raise ServiceUnavailable("Embedding service is not configured (HF_TOKEN)")

        payload = {"inputs": inputs, "options": {"wait_for_model": True}}
        headers = {"Authorization": f"Bearer {self._token}"}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("Embedding request timed out after %.1fs", self._timeout)
            raise ServiceError(
                "Embedding service timed out", service="embedding", detail=str(e)
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Embedding service unreachable: %s", e)
            raise ServiceError(
                "Embedding service unreachable", service="embedding", detail=str(e)
            ) from e

        if response.is_error:
            detail = error_detail(response)
            logger.error(
                "Embedding service error (%d): %s", response.status_code, detail[:200]
            )
            raise ServiceError(
                f"Embedding service error ({response.status_code})",
                service="embedding",
                status=response.status_code,
                detail=detail,
            )

        try:
            return response.json()
        except ValueError as e:
            raise FormatError(
                f"Unexpected embedding structure: body is not JSON "
                f"({response.text[:80]!r})"
            ) from e


class LocalEmbeddingClient(EmbeddingClient):
    """
    In-process sentence-transformers backend.

    The model is loaded lazily on first use and cached as a class-level
    singleton. Inference runs in a thread pool to keep the event loop
    responsive.
    """

    _model: ClassVar[Any] = None
    _model_name: ClassVar[str | None] = None

    def __init__(self, model: str | None = None, dimension: int | None = None) -> None:
        super().__init__(dimension)
        self._name = model or settings.EMBEDDING_MODEL

    @classmethod
    def _get_model(cls, name: str) -> Any:
        """
        Get or lazily initialize the sentence-transformers model.

        The import is deferred so that ``sentence_transformers`` is not
        required at module-import time (keeps test collection fast).
        """
        if cls._model is None or cls._model_name != name:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model: %s ...", name)
            cls._model = SentenceTransformer(name)
            cls._model_name = name
            logger.info("Model loaded: %s", name)
        return cls._model

    def _encode_sync(self, inputs: str | list[str]) -> Any:
        """Blocking encode; always call via ``asyncio.to_thread``."""
        model = self._get_model(self._name)
        return model.encode(inputs, normalize_embeddings=True)

    async def _fetch(self, inputs: str | list[str]) -> Any:
        try:
            return await asyncio.to_thread(self._encode_sync, inputs)
        except (OSError, RuntimeError) as e:
            logger.exception("Local embedding model failed")
            raise ServiceError(
                "Local embedding model failed", service="embedding", detail=str(e)
            ) from e

    @classmethod
    def reset(cls) -> None:
        """Release the model from memory."""
        cls._model = None
        cls._model_name = None
        logger.info("Local embedding model released")


def get_embedding_client() -> EmbeddingClient:
    """Build the embedding client selected by ``EMBEDDING_BACKEND``."""
    backend = settings.EMBEDDING_BACKEND.strip().lower()
    if backend == "huggingface":
        return HuggingFaceEmbeddingClient()
    if backend == "local":
        return LocalEmbeddingClient()
    raise ServiceUnavailable(f"Unknown embedding backend: '{settings.EMBEDDING_BACKEND}'")
