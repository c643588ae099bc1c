"""
Metadata server provider for workloads running on Google Cloud.

Compute Engine, GKE, Cloud Run and Cloud Functions expose the attached
service account through the instance metadata server. Every request must
carry ``Metadata-Flavor: Google``; a genuine server echoes the header back.

See https://cloud.google.com/compute/docs/metadata/predefined-metadata-keys
"""

import asyncio
import json
import logging
from collections.abc import Iterable
from urllib.parse import urlencode

import aiohttp

from gcp_auth.config import DEFAULT_METADATA_HOST
from gcp_auth.errors import MetadataQueryError, MetadataUnavailableError
from gcp_auth.oauth2.http import HttpResponse, HttpTransport
from gcp_auth.oauth2.models import ScopeSet, Token
from gcp_auth.oauth2.providers.base import BaseTokenProvider

logger = logging.getLogger(__name__)

METADATA_FLAVOR_HEADER = "Metadata-Flavor"
METADATA_FLAVOR_VALUE = "Google"
METADATA_HEADERS = {METADATA_FLAVOR_HEADER: METADATA_FLAVOR_VALUE}

TOKEN_PATH = "instance/service-accounts/default/token"
SCOPES_PATH = "instance/service-accounts/default/scopes"
PROJECT_ID_PATH = "project/project-id"

DEFAULT_PROBE_TIMEOUT_SECONDS = 3.0


class MetadataServiceAccount(BaseTokenProvider):
    """
    Provider backed by the instance metadata server.

    The project id is fetched once and cached for the provider lifetime.
    """

    kind = "metadata"

    def __init__(
        self,
        host: str = DEFAULT_METADATA_HOST,
        transport: HttpTransport | None = None,
    ):
        self.host = host
        self._transport = transport or HttpTransport()
        self._project_id: str | None = None
        self._project_id_loaded = False

    @property
    def base_url(self) -> str:
        return f"http://{self.host}/computeMetadata/v1/"

    async def probe(self, timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS) -> bool:
        """
        Check whether a metadata server answers on this host.

        Returns:
            True if the root answered 200 with ``Metadata-Flavor: Google``.
            Unreachable hosts and undecodable answers are not metadata servers.
        """
        try:
            response = await self._transport.get(
                self.base_url,
                headers=METADATA_HEADERS,
                timeout_seconds=timeout_seconds,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeError) as e:
            logger.debug(
                "Metadata server not reachable",
                extra={"metadata_host": self.host, "error_type": type(e).__name__},
            )
            return False

        flavor = response.headers.get(METADATA_FLAVOR_HEADER)
        available = response.status == 200 and flavor == METADATA_FLAVOR_VALUE
        logger.debug(
            "Metadata server probe completed",
            extra={"metadata_host": self.host, "http_status": response.status, "state": available},
        )
        return available

    async def _get(self, path: str) -> HttpResponse:
        url = self.base_url + path
        try:
            response = await self._transport.get(url, headers=METADATA_HEADERS)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Metadata server unavailable",
                extra={"metadata_host": self.host, "error_type": type(e).__name__},
            )
            raise MetadataUnavailableError(
                f"Metadata server {self.host} unavailable", cause=e
            ) from e

        if not response.ok:
            logger.warning(
                f"Metadata query failed: HTTP {response.status}",
                extra={"metadata_host": self.host, "http_status": response.status},
            )
            raise MetadataQueryError(
                f"Metadata query {path.split('?')[0]} failed: HTTP {response.status}: "
                f"{response.body[:200]}",
                status=response.status,
            )
        return response

    async def token(self, scopes: ScopeSet | Iterable[str] = ()) -> Token:
        """
        Fetch a token for the attached service account.

        Raises:
            MetadataUnavailableError: Server unreachable or timed out
            MetadataQueryError: Error status or unparsable token body
        """
        scope_set = ScopeSet.of(scopes)
        path = TOKEN_PATH
        if scope_set:
            path = f"{TOKEN_PATH}?{urlencode({'scopes': scope_set.comma_delimited()}, safe=',:/')}"

        response = await self._get(path)
        try:
            data = json.loads(response.body)
            if not isinstance(data, dict):
                raise ValueError("Token response is not a JSON object")
            token = Token.from_response(data, scope_set)
        except ValueError as e:
            raise MetadataQueryError(
                f"Metadata server returned an unusable token response: {e}",
                status=response.status,
                cause=e,
            ) from e

        logger.debug(
            "Acquired token from metadata server",
            extra={"provider": self.kind, "expires_at": token.expires_at.isoformat()},
        )
        return token

    async def project_id(self) -> str | None:
        """
        Project hosting this workload.

        Empty or 404 responses mean no project, returned as None.
        """
        if self._project_id_loaded:
            return self._project_id

        try:
            response = await self._get(PROJECT_ID_PATH)
        except MetadataQueryError as e:
            if e.status != 404:
                raise
            project_id = None
        else:
            project_id = response.body.strip() or None

        self._project_id = project_id
        self._project_id_loaded = True
        return project_id

    async def default_scopes(self) -> ScopeSet:
        """Scopes granted to the attached service account."""
        response = await self._get(SCOPES_PATH)
        return ScopeSet(line.strip() for line in response.body.splitlines() if line.strip())

    async def close(self) -> None:
        await self._transport.close()

    def __repr__(self) -> str:
        return f"MetadataServiceAccount(host={self.host!r})"


__all__ = ["MetadataServiceAccount", "METADATA_HEADERS"]
