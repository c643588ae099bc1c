"""Authentication manager: resolved provider plus token cache."""

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from gcp_auth.config import AuthConfig
from gcp_auth.oauth2.cache import RefreshCoordinator, TokenCache
from gcp_auth.oauth2.http import HttpTransport
from gcp_auth.oauth2.models import ScopeSet, Token
from gcp_auth.oauth2.providers import CustomServiceAccount
from gcp_auth.oauth2.resolver import ProviderResolver
from gcp_auth.paths import PlatformPaths
from gcp_auth.types import TokenSource

logger = logging.getLogger(__name__)


class AuthenticationManager:
    """
    Hands out cached Google Cloud access tokens for one credential source.

    The source is selected once, at construction; the cache and refresh
    coordination live as long as the manager. Managers are independent:
    create one per process or per identity and close it when done.

    Usage:
        manager = await AuthenticationManager.new()
        token = await manager.token(["https://www.googleapis.com/auth/cloud-platform"])
        headers = {"Authorization": token.authorization_header}
        await manager.close()

    Or as an async context manager:
        async with await AuthenticationManager.new() as manager:
            token = await manager.token(scopes)
    """

    def __init__(self, provider: TokenSource, config: AuthConfig | None = None):
        """
        Args:
            provider: Credential source to draw tokens from
            config: Engine configuration (safety margin)
        """
        self.config = config or AuthConfig()
        self._provider = provider
        self._cache = TokenCache(safety_margin_seconds=self.config.safety_margin_seconds)
        self._coordinator = RefreshCoordinator(self._cache)

        logger.debug(
            f"Initialized AuthenticationManager with {self.config.safety_margin_seconds}s safety margin",
            extra={"provider": self.kind},
        )

    @classmethod
    async def new(
        cls,
        config: AuthConfig | None = None,
        paths: PlatformPaths | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "AuthenticationManager":
        """
        Resolve a credential source from the environment and wrap it.

        Raises:
            CredentialsFormatError: A present source is malformed
            ResolutionError: No source is usable
        """
        config = config or AuthConfig.from_env(env)
        provider = await ProviderResolver(config, paths=paths, env=env).resolve()
        return cls(provider, config)

    @classmethod
    def from_provider(
        cls, provider: TokenSource, config: AuthConfig | None = None
    ) -> "AuthenticationManager":
        return cls(provider, config)

    @classmethod
    def from_service_account_file(
        cls, path: str | Path, config: AuthConfig | None = None
    ) -> "AuthenticationManager":
        """
        Build a manager for a service account key file.

        Raises:
            CredentialsFileError: File missing or unreadable
            KeyParseError: Key JSON or PEM malformed
        """
        config = config or AuthConfig()
        provider = CustomServiceAccount.from_file(
            path,
            subject=config.subject,
            transport=HttpTransport(timeout_seconds=config.http_timeout_seconds),
        )
        return cls(provider, config)

    @classmethod
    def from_service_account_json(
        cls, text: str, config: AuthConfig | None = None
    ) -> "AuthenticationManager":
        """
        Build a manager for a service account key held in a string.

        Raises:
            KeyParseError: Key JSON or PEM malformed
        """
        config = config or AuthConfig()
        provider = CustomServiceAccount.from_json(
            text,
            subject=config.subject,
            transport=HttpTransport(timeout_seconds=config.http_timeout_seconds),
        )
        return cls(provider, config)

    @property
    def provider(self) -> TokenSource:
        return self._provider

    @property
    def kind(self) -> str:
        return getattr(self._provider, "kind", type(self._provider).__name__)

    async def token(
        self,
        scopes: ScopeSet | Iterable[str] = (),
        force_refresh: bool = False,
    ) -> Token:
        """
        Get a token for scopes, from cache when fresh.

        Args:
            scopes: OAuth scopes; order and duplicates do not matter
            force_refresh: Bypass the cache and fetch a new token

        Returns:
            Token valid beyond the safety margin

        Raises:
            AuthEngineError: Provider-specific failure of the refresh
        """
        return await self._coordinator.get_or_refresh(
            self._provider, ScopeSet.of(scopes), force_refresh=force_refresh
        )

    async def project_id(self) -> str | None:
        """Project associated with the credential source, None when unknown."""
        return await self._provider.project_id()

    def last_error(self, scopes: ScopeSet | Iterable[str] = ()) -> Exception | None:
        """Error from the most recent failed refresh for scopes."""
        return self._cache.last_error(scopes)

    def get_cached_token_info(self, scopes: ScopeSet | Iterable[str] = ()) -> dict[str, Any] | None:
        """Diagnostics for the cached token, without the token itself."""
        return self._cache.get_cached_token_info(scopes)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def close(self) -> None:
        """Release provider transport resources and drop cached tokens."""
        try:
            await self._provider.close()
        finally:
            self._cache.clear()
            logger.info("AuthenticationManager closed", extra={"provider": self.kind})

    async def __aenter__(self) -> "AuthenticationManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"AuthenticationManager(provider={self._provider!r})"


__all__ = ["AuthenticationManager"]
