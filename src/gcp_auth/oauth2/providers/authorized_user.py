"""Application default credentials provider (authorized_user refresh grant)."""

import logging
from collections.abc import Iterable
from pathlib import Path

from gcp_auth.oauth2.http import HttpTransport
from gcp_auth.oauth2.models import ScopeSet, Token, UserCredentials
from gcp_auth.oauth2.providers.base import BaseTokenProvider

logger = logging.getLogger(__name__)


class ConfigDefaultCredentials(BaseTokenProvider):
    """
    Provider for ``authorized_user`` credentials written by
    ``gcloud auth application-default login``.

    Tokens come from a refresh-token grant. Scopes are not sent: user
    credentials carry the scopes consented at login. The returned Token
    records the requested scopes so it is cached under the caller's key.
    """

    kind = "authorized_user"

    def __init__(
        self,
        credentials: UserCredentials,
        transport: HttpTransport | None = None,
        source: str | None = None,
    ):
        self.credentials = credentials
        self.source = source
        self._transport = transport or HttpTransport()

        logger.debug(
            "Initialized application default credentials provider",
            extra={"credentials_path": source, "token_uri": credentials.token_uri},
        )

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        transport: HttpTransport | None = None,
    ) -> "ConfigDefaultCredentials":
        """
        Load authorized_user credentials from a file.

        Raises:
            CredentialsFileError: Missing file, invalid JSON or missing fields
        """
        return cls(UserCredentials.from_file(path), transport=transport, source=str(path))

    async def token(self, scopes: ScopeSet | Iterable[str] = ()) -> Token:
        """
        Acquire a token with the refresh_token grant.

        Raises:
            TokenEndpointUnavailableError: Token endpoint unreachable
            TokenExchangeError: Refresh token rejected or response unusable
        """
        form = {
            "grant_type": "refresh_token",
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            "refresh_token": self.credentials.refresh_token,
        }
        return await self._transport.request_token(
            self.credentials.token_uri,
            form,
            scopes=ScopeSet.of(scopes),
            source=self.kind,
        )

    async def project_id(self) -> str | None:
        return self.credentials.quota_project_id

    async def close(self) -> None:
        await self._transport.close()

    def __repr__(self) -> str:
        return f"ConfigDefaultCredentials(client_id={self.credentials.client_id!r})"


__all__ = ["ConfigDefaultCredentials"]
