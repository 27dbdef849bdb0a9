"""Custom exception hierarchy.

Every error raised on purpose by the service derives from ``AppError``. The
HTTP boundary in ``app.main`` maps each subclass to a status code and a stable
message; nothing else translates errors.
"""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""

    status_code: int = 500
    title: str = "Internal Server Error"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(AppError):
    """Raised when input validation or a domain precondition fails."""

    status_code = 400
    title = "Validation Failed"


class AuthenticationError(AppError):
    """Raised when no verified identity is attached to the request."""

    status_code = 401
    title = "Unauthorized"


class PermissionDeniedError(AppError):
    """Raised when the caller does not own the targeted project."""

    status_code = 403
    title = "Forbidden"


class NotFoundError(AppError):
    """Raised when a project, segment or draft set cannot be found."""

    status_code = 404
    title = "Not Found"


class ProviderError(AppError):
    """Base exception for generative-text provider failures.

    ``retryable`` is False for responses that will not change on a repeat
    call (client errors other than rate limiting).
    """

    status_code = 502
    title = "Generation Failed"

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        retryable: bool = True,
    ):
        super().__init__(message, original_error)
        self.retryable = retryable


class APIClientError(ProviderError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class MalformedOutputError(ProviderError):
    """Raised when provider output cannot be parsed as JSON."""

    def __init__(self, message: str, raw_text: str = "", original_error: Optional[Exception] = None):
        super().__init__(message, original_error)
        self.raw_text = raw_text


class DatabaseError(AppError):
    """Raised when a required database write fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class UnknownStepError(LookupError):
    """Raised when a step or stage identifier is not part of the workflow.

    Not an ``AppError``: no route or service should be able to produce such
    an identifier, so the HTTP boundary reports it as an internal error.
    """
    pass
