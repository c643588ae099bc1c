"""Service account provider using a self-signed JWT assertion."""

import logging
from collections.abc import Iterable
from pathlib import Path

from gcp_auth.oauth2.http import HttpTransport
from gcp_auth.oauth2.models import ScopeSet, ServiceAccountKey, Token
from gcp_auth.oauth2.providers.base import BaseTokenProvider
from gcp_auth.oauth2.signing import (
    GRANT_TYPE,
    JWTSigner,
    build_claims,
    encode_assertion,
)

logger = logging.getLogger(__name__)


class CustomServiceAccount(BaseTokenProvider):
    """
    Service account provider for IAM key files.

    Signs a JWT with the key's RSA private key and exchanges it at the
    key's token_uri using the jwt-bearer grant. The private key is parsed
    once at construction, so a bad key fails before any network call.
    """

    kind = "service_account"

    def __init__(
        self,
        key: ServiceAccountKey,
        subject: str | None = None,
        transport: HttpTransport | None = None,
    ):
        """
        Initialize service account provider.

        Args:
            key: Parsed service account key
            subject: User to impersonate with domain-wide delegation
            transport: HTTP transport (default: new transport, 30s timeout)

        Raises:
            KeyParseError: Private key is not a valid PEM RSA key
        """
        self.key = key
        self.subject = subject
        self._signer = JWTSigner(key.private_key)
        self._transport = transport or HttpTransport()

        logger.debug(
            "Initialized service account provider",
            extra={"client_email": key.client_email, "token_uri": key.token_uri},
        )

    @classmethod
    def from_key(
        cls,
        key: ServiceAccountKey,
        subject: str | None = None,
        transport: HttpTransport | None = None,
    ) -> "CustomServiceAccount":
        return cls(key, subject=subject, transport=transport)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        subject: str | None = None,
        transport: HttpTransport | None = None,
    ) -> "CustomServiceAccount":
        """Load a service account key file."""
        return cls(ServiceAccountKey.from_file(path), subject=subject, transport=transport)

    @classmethod
    def from_json(
        cls,
        text: str,
        subject: str | None = None,
        transport: HttpTransport | None = None,
    ) -> "CustomServiceAccount":
        """Load a service account key from a JSON string."""
        return cls(ServiceAccountKey.from_json(text), subject=subject, transport=transport)

    def create_assertion(self, scopes: ScopeSet | Iterable[str] = ()) -> str:
        """
        Build and sign the JWT assertion for a token request.

        Raises:
            SigningError: Signing failed
        """
        claims = build_claims(self.key, ScopeSet.of(scopes), subject=self.subject)
        return encode_assertion(claims, self._signer, key_id=self.key.private_key_id)

    async def token(self, scopes: ScopeSet | Iterable[str] = ()) -> Token:
        """
        Acquire a token with the jwt-bearer grant.

        Raises:
            SigningError: Assertion could not be signed
            TokenEndpointUnavailableError: Token endpoint unreachable
            TokenExchangeError: Token endpoint rejected the assertion
        """
        scope_set = ScopeSet.of(scopes)
        assertion = self.create_assertion(scope_set)
        return await self._transport.request_token(
            self.key.token_uri,
            {"grant_type": GRANT_TYPE, "assertion": assertion},
            scopes=scope_set,
            source=self.kind,
        )

    async def project_id(self) -> str | None:
        return self.key.project_id or self.key.quota_project_id

    async def close(self) -> None:
        await self._transport.close()

    def __repr__(self) -> str:
        return f"CustomServiceAccount(client_email={self.key.client_email!r})"


__all__ = ["CustomServiceAccount"]
