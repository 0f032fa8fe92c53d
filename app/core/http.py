"""Helpers shared by the httpx-based service clients."""

from __future__ import annotations

import httpx


def error_detail(response: httpx.Response) -> str:
    """
    Extract the upstream error message from a failed response.

    Understands ``{"error": "..."}`` (Hugging Face) and
    ``{"error": {"message": "..."}}`` (OpenAI-compatible) bodies and falls
    back to the raw text.
    """
    try:
        data = response.json()
    except ValueError:
        return response.text or "empty response"
    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(error)
    return response.text or "empty response"
