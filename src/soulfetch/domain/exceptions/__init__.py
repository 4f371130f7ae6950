"""Domain exceptions for ranking, scheduling and library bookkeeping."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, the scheduler copies .message straight into job.error_message, so keep it readable.
    # Never raise the base class directly.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(DomainException):
    """Input validation failed.

    Raised when input data fails validation rules (negative weights,
    unknown strategy names, empty track queries).

    Example:
        raise ValidationError("Scoring weight 'quality' must be non-negative")
        raise ValidationError("Invalid ranking strategy: 'loud'")
    """

    pass


class InvalidStateException(DomainException):
    """Raised when a job is in an invalid state for the requested operation.

    Hey future me - job transitions themselves NEVER raise (guard violations are
    no-ops so the UI can spam buttons). This is only for scheduler-level misuse,
    e.g. enqueueing after stop() or starting the same scheduler twice.
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when required configuration is missing or invalid.

    Example:
        raise ConfigurationError("slskd API key not configured")
    """

    pass


# =============================================================================
# Download pipeline failures
# Hey future me - these map 1:1 onto the error taxonomy of a download attempt.
# The scheduler catches them and turns them into Failed + error_message, they
# NEVER escape the worker loop.
# =============================================================================


class ExternalServiceError(DomainException):
    """External service (slskd, Soulseek network) returned an error.

    Example:
        raise ExternalServiceError("slskd API error: 503 Service Unavailable")
    """

    pass


class ProviderError(ExternalServiceError):
    """Search or transfer failure reported by the search/transfer provider.

    Always recoverable via retry (hard retry or the optional back-off policy).
    """

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class TransferError(ProviderError):
    """The peer rejected, errored or timed out a file transfer."""

    pass


class SizeMismatchError(DomainException):
    """Transferred byte count disagrees with the declared file size."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Size mismatch: expected {expected} bytes, got {actual}")
        self.expected = expected
        self.actual = actual


class NoCandidatesError(DomainException):
    """Search returned nothing usable for the wanted track."""

    def __init__(self, query: str, total_results: int = 0) -> None:
        if total_results:
            message = f"No suitable candidates for '{query}' ({total_results} results rejected)"
        else:
            message = f"No candidates found for '{query}'"
        super().__init__(message)
        self.query = query
        self.total_results = total_results


# =============================================================================
# Public API - All exceptions that can be imported
# =============================================================================
__all__ = [
    # Base
    "DomainException",
    # Validation / state
    "ValidationError",
    "InvalidStateException",
    # Configuration
    "ConfigurationError",
    # Download pipeline
    "ExternalServiceError",
    "ProviderError",
    "TransferError",
    "SizeMismatchError",
    "NoCandidatesError",
]
