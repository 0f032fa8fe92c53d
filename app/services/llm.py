"""
LLM Service

Generation service integration over an OpenAI-compatible
``/chat/completions`` endpoint (Groq by default, any compatible server
such as Ollama's ``/v1`` works too).

Design:
    - Async HTTP calls via httpx (non-blocking).
    - No fallback: a missing key raises ``ServiceUnavailable``; an error
      status, timeout or unusable body raises ``ServiceError`` carrying the
      upstream status and detail. The chat turn never degrades to an
      ungrounded canned answer.
    - Model and temperature are configuration, not part of the call.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.core.config import settings
from app.core.exceptions import ServiceError, ServiceUnavailable
from app.core.http import error_detail

logger = logging.getLogger(__name__)


class LLMService:
    """
    Async chat-completions client.

    Usage::

        service = LLMService()
        answer = await service.generate([
            {"role": "system", "content": "..."},
            {"role": "user", "content": "How do I protect my password?"},
        ])
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the LLM service.

        Args:
            base_url: API base URL (default from config).
            api_key: Bearer key (default from config).
            model: Model name (default from config).
            temperature: Sampling temperature (default from config).
            timeout: Request timeout in seconds (default from config).
            transport: Optional httpx transport (tests inject a MockTransport).
        """
        self._base_url = (base_url or settings.GENERATION_BASE_URL).rstrip("/")
        self._api_key = api_key or settings.GENERATION_API_KEY
        self._model = model or settings.GENERATION_MODEL
        self._temperature = (
            settings.GENERATION_TEMPERATURE if temperature is None else temperature
        )
        self._timeout = timeout or settings.GENERATION_TIMEOUT
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    async def generate(self, messages: list[dict[str, str]]) -> str:
        """
        Generate the assistant reply for a full message list.

        Args:
            messages: ``[{"role", "content"}, ...]`` with the system
                instruction first, then the conversation history as-is.

        Returns:
            The generated text.

        Raises:
            ServiceUnavailable: No API key configured.
            ServiceError: Non-success status, timeout, or empty completion.
        """
        if not self._api_key:
            raise ServiceUnavailable(
                "Generation service is not configured (GENERATION_API_KEY)"
            )

        payload = {
            "model": self._model,
            "temperature": self._temperature,
            "messages": messages,
        }
        data = await self._post("/chat/completions", payload)
        content = _first_choice_content(data)
        if not content:
            raise ServiceError(
                "Generation service returned no content",
                service="generation",
                status=200,
                detail=str(data)[:500],
            )

        logger.info(
            "Generated response (model=%s, messages=%d, length=%d)",
            self._model,
            len(messages),
            len(content),
        )
        return content

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("Generation request timed out after %.1fs", self._timeout)
            raise ServiceError(
                "Generation service timed out", service="generation", detail=str(e)
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Generation service unreachable: %s", e)
            raise ServiceError(
                "Generation service unreachable", service="generation", detail=str(e)
            ) from e

        if response.is_error:
            detail = error_detail(response)
            logger.error(
                "Generation service error (%d): %s", response.status_code, detail[:200]
            )
            raise ServiceError(
                f"Generation service error ({response.status_code})",
                service="generation",
                status=response.status_code,
                detail=detail,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ServiceError(
                "Generation service returned a non-JSON body",
                service="generation",
                status=response.status_code,
                detail=response.text[:500],
            ) from e


def _first_choice_content(data: Any) -> str:
    try:
        return (data["choices"][0]["message"]["content"] or "").strip()
    except (KeyError, IndexError, TypeError):
        return ""
