"""Base credential-source provider interface."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from gcp_auth.oauth2.models import ScopeSet, Token

logger = logging.getLogger(__name__)


class BaseTokenProvider(ABC):
    """
    Abstract base class for credential-source providers.

    Implementations acquire tokens from one source (service account key,
    application default credentials, metadata server, gcloud CLI). They do
    not cache; caching and refresh coordination live in the cache layer.
    """

    kind: str = "base"

    @abstractmethod
    async def token(self, scopes: ScopeSet | Iterable[str] = ()) -> Token:
        """
        Acquire a new token.

        Args:
            scopes: OAuth scopes to request

        Returns:
            Token with access token and expiration

        Raises:
            AuthEngineError: Provider-specific subclass on failure
        """
        pass

    async def project_id(self) -> str | None:
        """Project identifier for this source, or None when unknown."""
        return None

    async def close(self) -> None:
        """Release transport resources."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r})"


__all__ = ["BaseTokenProvider"]
