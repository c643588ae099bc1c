"""
Unified exception hierarchy for gcp_auth.

Provides typed exceptions with retry classification so callers can decide
whether to retry, back off or abort. The engine never retries on its own.
"""

from gcp_auth.types import ErrorCategory


class AuthEngineError(Exception):
    """
    Base exception for all gcp_auth errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Resolution
# =============================================================================


class ResolutionError(AuthEngineError):
    """
    No usable credential source could be selected.

    Attributes:
        reason: "no_credentials" when nothing was found, or
                "malformed_credentials" when a source was found but unusable
        attempts: (source, outcome) pairs in probe order
    """

    category = ErrorCategory.PERMANENT

    NO_CREDENTIALS = "no_credentials"
    MALFORMED_CREDENTIALS = "malformed_credentials"

    def __init__(
        self,
        message: str,
        reason: str = NO_CREDENTIALS,
        attempts: list[tuple[str, str]] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause, {"reason": reason})
        self.reason = reason
        self.attempts = attempts or []


# =============================================================================
# Credential material
# =============================================================================


class CredentialsFormatError(AuthEngineError):
    """Credential material is present but malformed."""

    category = ErrorCategory.PERMANENT


class KeyParseError(CredentialsFormatError):
    """Service account key JSON or PEM private key could not be parsed."""

    pass


class CredentialsFileError(CredentialsFormatError):
    """Credentials file is missing, unreadable or has invalid contents."""

    pass


class SigningError(AuthEngineError):
    """JWT assertion could not be signed."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Token exchange
# =============================================================================


class TokenExchangeError(AuthEngineError):
    """
    Token endpoint returned a non-success response.

    Attributes:
        status: HTTP status code (None when the endpoint was not reached)
        body: Response body, kept for diagnosis
    """

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause, {"status": status})
        self.status = status
        self.body = body
        if status is not None and not 200 <= status < 300:
            self.category = classify_http_status(status)


class TokenEndpointUnavailableError(TokenExchangeError):
    """Token endpoint could not be reached (connection error or timeout)."""

    category = ErrorCategory.TRANSIENT


class ExpiredTokenError(AuthEngineError):
    """Provider returned a token whose expiry is not in the future."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Metadata server
# =============================================================================


class MetadataUnavailableError(AuthEngineError):
    """Metadata server unreachable or timed out. Safe to retry."""

    category = ErrorCategory.TRANSIENT


class MetadataQueryError(AuthEngineError):
    """Metadata server answered with an error or an unparsable body."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        message: str,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause, {"status": status})
        self.status = status


# =============================================================================
# gcloud CLI
# =============================================================================


class CliInvocationError(AuthEngineError):
    """gcloud missing, exited non-zero, timed out or printed nothing usable."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause, {"returncode": returncode})
        self.returncode = returncode
        self.stderr = stderr


# =============================================================================
# Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """Classify HTTP status code from a token endpoint into error category."""
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code in (400, 401, 403):
        # invalid_grant / invalid_client / unauthorized_client
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def is_transient_error(exc: Exception) -> bool:
    """Check if exception is transient (may succeed on retry)."""
    if isinstance(exc, AuthEngineError):
        return exc.category == ErrorCategory.TRANSIENT
    return False


def is_retryable_error(exc: Exception) -> bool:
    """Check if a caller may reasonably retry after this exception."""
    if isinstance(exc, AuthEngineError):
        return exc.is_retryable
    return False
