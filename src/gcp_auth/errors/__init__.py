"""
Error classification and exception hierarchy.

Provides:
- AuthEngineError hierarchy for typed exceptions
- Classification utilities for caller-side retry decisions
"""

from gcp_auth.errors.exceptions import (
    AuthEngineError,
    CliInvocationError,
    CredentialsFileError,
    CredentialsFormatError,
    ExpiredTokenError,
    KeyParseError,
    MetadataQueryError,
    MetadataUnavailableError,
    ResolutionError,
    SigningError,
    TokenEndpointUnavailableError,
    TokenExchangeError,
    classify_http_status,
    is_retryable_error,
    is_transient_error,
)
from gcp_auth.types import ErrorCategory

__all__ = [
    # Enums
    "ErrorCategory",
    # Base class
    "AuthEngineError",
    # Resolution
    "ResolutionError",
    # Credential material
    "CredentialsFormatError",
    "KeyParseError",
    "CredentialsFileError",
    "SigningError",
    # Token exchange
    "TokenExchangeError",
    "TokenEndpointUnavailableError",
    "ExpiredTokenError",
    # Metadata
    "MetadataUnavailableError",
    "MetadataQueryError",
    # CLI
    "CliInvocationError",
    # Classification utilities
    "classify_http_status",
    "is_transient_error",
    "is_retryable_error",
]
