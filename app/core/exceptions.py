"""
Error Taxonomy

Typed failures raised by the ingestion and chat pipelines. Each error
carries the HTTP status and a stable ``code`` used by the API exception
handler, so the transport layer never has to inspect messages.

Retry guidance:
    ValidationError, AuthorizationError, DocumentNotFound
        Caller fault. Never retried.
    ServiceUnavailable
        Missing configuration or credentials. Fix and redeploy.
    ServiceError (and FormatError, DimensionMismatch)
        Dependency reachable but failed. The caller may retry, except for
        shape violations, which indicate an incompatible service.
    StorageError
        Persistence failure. Recorded on the document during ingestion.
"""

from __future__ import annotations


class RAGError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RAGError):
    """Bad or missing required input."""

    status_code = 422
    code = "validation_error"


class AuthorizationError(RAGError):
    """The requester may not access the referenced resource."""

    status_code = 403
    code = "authorization_error"


class DocumentNotFound(RAGError):
    """No document with the given identifier exists."""

    status_code = 404
    code = "document_not_found"


class ServiceUnavailable(RAGError):
    """An external dependency is not configured (e.g. missing API key)."""

    status_code = 503
    code = "service_unavailable"


class ServiceError(RAGError):
    """
    An external dependency returned a failure.

    Attributes:
        service: Name of the failing dependency ("embedding", "generation").
        status: Upstream HTTP status, or None for timeouts/transport errors.
        detail: Upstream error body or message.
    """

    status_code = 502
    code = "service_error"

    def __init__(
        self,
        message: str,
        *,
        service: str,
        status: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status = status
        self.detail = detail


class FormatError(ServiceError):
    """The embedding service returned a tensor with an unexpected shape."""

    code = "embedding_format_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, service="embedding")


class DimensionMismatch(ServiceError):
    """A normalized embedding does not have the declared dimension."""

    code = "embedding_dimension_mismatch"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding has {actual} dimensions, expected {expected}",
            service="embedding",
        )
        self.expected = expected
        self.actual = actual


class StorageError(RAGError):
    """The record store or object storage failed."""

    status_code = 500
    code = "storage_error"
