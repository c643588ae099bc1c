"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the library to ensure consistency and type safety.
"""

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from gcp_auth.oauth2.models import Token


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Callers use the category to decide between retrying, backing off and
    aborting. The engine itself never retries.

    Categories:
        TRANSIENT: Temporary failures that may succeed on retry with backoff
                   (e.g., metadata server unreachable, token endpoint 503)
        AUTH: Credentials were rejected by the token endpoint
              (e.g., 401, revoked refresh token)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., malformed key file, missing gcloud, bad response)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class TokenSource(Protocol):
    """
    Protocol implemented by every credential-source provider.

    The engine dispatches only through this capability; it never inspects
    the concrete provider type.
    """

    kind: str

    async def token(self, scopes: Sequence[str]) -> "Token":
        """
        Produce a fresh token for the requested scopes.

        Args:
            scopes: OAuth scopes to request

        Returns:
            Newly acquired Token

        Raises:
            AuthEngineError: Provider-specific subclass on failure
        """
        ...

    async def project_id(self) -> str | None:
        """Project identifier for this credential source, or None if unknown."""
        ...

    async def close(self) -> None:
        """Release transport resources held by the provider."""
        ...


__all__ = [
    "ErrorCategory",
    "TokenSource",
]
