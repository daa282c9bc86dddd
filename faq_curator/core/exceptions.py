"""Custom exceptions for the FAQ curator."""


# -----------------------------------------------------------------------------
# Application Base Error
# -----------------------------------------------------------------------------


class AppError(Exception):
    """Base application error with HTTP semantics.

    All domain exceptions that should map to HTTP responses inherit from this.
    The global error handler in error_handlers.py catches these and returns
    a consistent JSON response.
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, detail: str = "An unexpected error occurred", context: dict | None = None):
        self.detail = detail
        self.context = context
        super().__init__(self.detail)


# -----------------------------------------------------------------------------
# Generic CRUD Exceptions
# -----------------------------------------------------------------------------


class EntityNotFound(AppError):
    """Entity not found by primary key (404)."""

    status_code = 404
    error_code = "NOT_FOUND"


class ValidationError(AppError):
    """Generic validation error (400)."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


# -----------------------------------------------------------------------------
# FAQ Engine Exceptions
# -----------------------------------------------------------------------------


class FAQGenerationError(AppError):
    """FAQ generation for a document failed as a whole (500)."""

    status_code = 500
    error_code = "FAQ_GENERATION_FAILED"


class DuplicateFAQError(AppError):
    """A manually created FAQ duplicates an existing one (409)."""

    status_code = 409
    error_code = "DUPLICATE_FAQ"


class CompletionError(Exception):
    """Completion gateway failed to produce a usable response.

    Causes:
        - Ollama service unavailable or timed out
        - Model returned text that is not valid JSON
        - Response JSON missing required fields
    """

    pass


# -----------------------------------------------------------------------------
# Vector Service Exceptions
# -----------------------------------------------------------------------------


class VectorServiceError(Exception):
    """Base exception for vector index errors.

    All vector index exceptions inherit from this class,
    allowing callers to catch all vector errors with a single handler.
    """

    pass


class EmbeddingError(VectorServiceError):
    """Failed to generate an embedding.

    Causes:
        - Ollama service unavailable
        - Embedding model not found or not loaded
        - Returned vector has the wrong dimension
    """

    pass


class VectorIndexError(VectorServiceError):
    """A vector index operation failed after exhausting its retries.

    Carries the operation name and the number of attempts made; the last
    underlying error is chained as ``__cause__``.
    """

    def __init__(self, operation: str, attempts: int, message: str | None = None):
        self.operation = operation
        self.attempts = attempts
        super().__init__(message or f"{operation} failed after {attempts} attempt(s)")


class IndexProvisioningError(VectorServiceError):
    """Collection could not be created or never became ready.

    Causes:
        - Qdrant service unavailable
        - Collection status never reached GREEN within the polling window
    """

    pass


class OperationCancelledError(VectorServiceError):
    """Index operation aborted by its cancel token (non-retryable)."""

    pass
