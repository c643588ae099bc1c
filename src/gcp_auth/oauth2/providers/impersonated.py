"""
Service account impersonation provider.

A token from the source credentials authorizes a call to the IAM Credentials
``generateAccessToken`` method, which returns a short-lived token for the
target service account. gcloud writes these credentials with
``gcloud auth application-default login --impersonate-service-account``.

See https://cloud.google.com/iam/docs/reference/credentials/rest/v1/projects.serviceAccounts/generateAccessToken
"""

import logging
import re
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from gcp_auth.oauth2.http import HttpTransport
from gcp_auth.oauth2.models import (
    ImpersonatedCredentials,
    ScopeSet,
    ServiceAccountKey,
    Token,
)
from gcp_auth.oauth2.providers.authorized_user import ConfigDefaultCredentials
from gcp_auth.oauth2.providers.base import BaseTokenProvider
from gcp_auth.oauth2.providers.service_account import CustomServiceAccount

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
DEFAULT_LIFETIME_SECONDS = 3600

# datetime.fromisoformat takes at most microseconds
_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def parse_expire_time(value: str) -> datetime:
    """Parse an RFC 3339 timestamp such as ``2026-08-18T04:09:45.123456789Z``."""
    text = _FRACTION_PATTERN.sub(r"\1", value.strip())
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    expires_at = datetime.fromisoformat(text)
    if expires_at.tzinfo is None:
        raise ValueError(f"expireTime has no UTC offset: {value!r}")
    return expires_at


def parse_impersonation_response(data: dict, scopes: ScopeSet) -> Token:
    """
    Build a Token from a generateAccessToken response body.

    Raises:
        ValueError: accessToken missing or expireTime not an RFC 3339 timestamp
    """
    access_token = data.get("accessToken")
    if not isinstance(access_token, str) or not access_token:
        raise ValueError("Impersonation response has no accessToken")

    expire_time = data.get("expireTime")
    if not isinstance(expire_time, str) or not expire_time:
        raise ValueError("Impersonation response has no expireTime")

    return Token(
        access_token=access_token,
        expires_at=parse_expire_time(expire_time),
        scopes=scopes,
    )


class ImpersonatedServiceAccount(BaseTokenProvider):
    """
    Provider that impersonates a service account through IAM Credentials.

    Each refresh first takes a cloud-platform token from the source provider,
    then exchanges it for a token of the target service account. Source tokens
    are not cached here; the engine refreshes the impersonated token only when
    it nears expiry.
    """

    kind = "impersonated_service_account"

    def __init__(
        self,
        source: BaseTokenProvider,
        impersonation_url: str,
        delegates: Iterable[str] = (),
        quota_project_id: str | None = None,
        transport: HttpTransport | None = None,
        lifetime_seconds: int = DEFAULT_LIFETIME_SECONDS,
    ):
        """
        Args:
            source: Provider whose token authorizes the impersonation
            impersonation_url: generateAccessToken URL of the target account
            delegates: Delegation chain, each granting the next the
                Service Account Token Creator role
            quota_project_id: Project billed for quota
            transport: HTTP transport (default: new transport, 30s timeout)
            lifetime_seconds: Requested lifetime of impersonated tokens
        """
        if lifetime_seconds <= 0:
            raise ValueError(f"lifetime_seconds must be > 0, got {lifetime_seconds}")
        self.source = source
        self.impersonation_url = impersonation_url
        self.delegates = tuple(delegates)
        self.quota_project_id = quota_project_id
        self.lifetime_seconds = lifetime_seconds
        self._transport = transport or HttpTransport()

        logger.debug(
            "Initialized impersonation provider",
            extra={
                "provider": self.kind,
                "source": source.kind,
                "token_uri": impersonation_url,
            },
        )

    @classmethod
    def from_credentials(
        cls,
        credentials: ImpersonatedCredentials,
        transport: HttpTransport | None = None,
        source: str | None = None,
    ) -> "ImpersonatedServiceAccount":
        """
        Build the provider and its source provider from parsed credentials.

        Both providers share one transport.

        Raises:
            KeyParseError: Source service account key is not a valid PEM RSA key
        """
        transport = transport or HttpTransport()
        nested = credentials.source_credentials
        if isinstance(nested, ServiceAccountKey):
            source_provider: BaseTokenProvider = CustomServiceAccount(nested, transport=transport)
        else:
            source_provider = ConfigDefaultCredentials(nested, transport=transport, source=source)

        return cls(
            source_provider,
            credentials.service_account_impersonation_url,
            delegates=credentials.delegates,
            quota_project_id=credentials.quota_project_id,
            transport=transport,
        )

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        transport: HttpTransport | None = None,
    ) -> "ImpersonatedServiceAccount":
        """Load impersonated_service_account credentials from a file."""
        return cls.from_credentials(
            ImpersonatedCredentials.from_file(path), transport=transport, source=str(path)
        )

    async def token(self, scopes: ScopeSet | Iterable[str] = ()) -> Token:
        """
        Acquire a token for the target service account.

        Requests cloud-platform when no scopes are given.

        Raises:
            AuthEngineError: Source provider failed (its own subclass)
            TokenEndpointUnavailableError: IAM Credentials unreachable
            TokenExchangeError: Impersonation refused or response unusable
        """
        scope_set = ScopeSet.of(scopes)
        source_token = await self.source.token([CLOUD_PLATFORM_SCOPE])

        payload: dict = {
            "scope": list(scope_set.scopes or (CLOUD_PLATFORM_SCOPE,)),
            "lifetime": f"{self.lifetime_seconds}s",
        }
        if self.delegates:
            payload["delegates"] = list(self.delegates)

        token = await self._transport.exchange(
            self.impersonation_url,
            json_body=payload,
            headers={"Authorization": source_token.authorization_header},
            source=self.kind,
            parse=lambda data: parse_impersonation_response(data, scope_set),
        )

        logger.debug(
            "Acquired impersonated token",
            extra={"provider": self.kind, "expires_at": token.expires_at.isoformat()},
        )
        return token

    async def project_id(self) -> str | None:
        if self.quota_project_id:
            return self.quota_project_id
        return await self.source.project_id()

    async def close(self) -> None:
        await self.source.close()
        await self._transport.close()

    def __repr__(self) -> str:
        return (
            f"ImpersonatedServiceAccount(url={self.impersonation_url!r}, "
            f"source={self.source!r})"
        )


__all__ = ["ImpersonatedServiceAccount", "parse_impersonation_response"]
