"""HTTP transport shared by the network-backed providers."""

import asyncio
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import aiohttp

from gcp_auth.errors import TokenEndpointUnavailableError, TokenExchangeError
from gcp_auth.oauth2.models import ScopeSet, Token

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 30.0
ERROR_BODY_PREVIEW = 200


@dataclass(frozen=True)
class HttpResponse:
    """Fully-read HTTP response."""

    status: int
    body: str
    headers: Mapping[str, str]

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpTransport:
    """
    Thin wrapper over an aiohttp session.

    The session is created lazily on first use and closed by ``close()``.
    A session passed in by the caller is used as-is and left open.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP client session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _timeout(self, timeout_seconds: float | None) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=timeout_seconds or self.timeout_seconds)

    async def get(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> HttpResponse:
        """
        GET a URL and read the whole body.

        Raises:
            aiohttp.ClientError: Connection failure
            asyncio.TimeoutError: Request exceeded its timeout
        """
        session = await self._ensure_session()
        async with session.get(
            url,
            headers=dict(headers or {}),
            timeout=self._timeout(timeout_seconds),
        ) as response:
            body = await response.text(errors="replace")
            return HttpResponse(status=response.status, body=body, headers=response.headers)

    async def post_form(
        self,
        url: str,
        data: Mapping[str, str],
        timeout_seconds: float | None = None,
    ) -> HttpResponse:
        """
        POST a form-encoded body and read the whole response.

        Raises:
            aiohttp.ClientError: Connection failure
            asyncio.TimeoutError: Request exceeded its timeout
        """
        session = await self._ensure_session()
        async with session.post(
            url,
            data=dict(data),
            timeout=self._timeout(timeout_seconds),
        ) as response:
            body = await response.text(errors="replace")
            return HttpResponse(status=response.status, body=body, headers=response.headers)

    async def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
        timeout_seconds: float | None = None,
    ) -> HttpResponse:
        """
        POST a JSON body and read the whole response.

        Raises:
            aiohttp.ClientError: Connection failure
            asyncio.TimeoutError: Request exceeded its timeout
        """
        session = await self._ensure_session()
        async with session.post(
            url,
            json=dict(payload),
            headers=dict(headers or {}),
            timeout=self._timeout(timeout_seconds),
        ) as response:
            body = await response.text(errors="replace")
            return HttpResponse(status=response.status, body=body, headers=response.headers)

    async def exchange(
        self,
        url: str,
        form: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        source: str = "token endpoint",
        parse: Callable[[dict], T] | None = None,
    ) -> T | dict:
        """
        POST a grant to a token endpoint and decode the JSON object it returns.

        Sends ``json_body`` as JSON when given, otherwise ``form`` form-encoded.
        ``parse`` turns the decoded object into a result; a ValueError, KeyError
        or TypeError it raises is reported as an unusable response.

        Raises:
            TokenEndpointUnavailableError: Connection failure or timeout
            TokenExchangeError: Non-2xx response or a body that is not a JSON object
        """
        try:
            if json_body is not None:
                response = await self.post_json(url, json_body, headers=headers)
            else:
                response = await self.post_form(url, form or {})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                f"Token endpoint unreachable for {source}: {type(e).__name__}",
                extra={"token_uri": url, "provider": source, "error_type": type(e).__name__},
            )
            raise TokenEndpointUnavailableError(
                f"Token endpoint {url} unreachable", cause=e
            ) from e

        if not response.ok:
            preview = response.body[:ERROR_BODY_PREVIEW]
            logger.warning(
                f"Token exchange failed for {source}: HTTP {response.status}",
                extra={"token_uri": url, "provider": source, "http_status": response.status},
            )
            raise TokenExchangeError(
                f"Token exchange failed: HTTP {response.status}: {preview}",
                status=response.status,
                body=response.body,
            )

        try:
            data = json.loads(response.body)
            if not isinstance(data, dict):
                raise ValueError("Token response is not a JSON object")
            return parse(data) if parse is not None else data
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Token endpoint returned an unusable body for {source}",
                extra={"token_uri": url, "provider": source, "http_status": response.status},
            )
            raise TokenExchangeError(
                f"Token endpoint returned an unusable response: {e}",
                status=response.status,
                body=response.body[:ERROR_BODY_PREVIEW],
                cause=e,
            ) from e

    async def request_token(
        self,
        token_uri: str,
        form: Mapping[str, str],
        scopes: ScopeSet | Iterable[str] | None = None,
        source: str = "token endpoint",
    ) -> Token:
        """
        Exchange a grant at an OAuth2 token endpoint.

        Args:
            token_uri: Token endpoint URL
            form: Grant parameters (grant_type plus grant-specific fields)
            scopes: Scopes recorded on the returned Token
            source: Provider kind, for log messages

        Returns:
            Token parsed from the response

        Raises:
            TokenEndpointUnavailableError: Connection failure or timeout
            TokenExchangeError: Non-2xx response or unusable body
        """
        token = await self.exchange(
            token_uri,
            form=form,
            source=source,
            parse=lambda data: Token.from_response(data, scopes),
        )

        logger.debug(
            f"Acquired token from {source}",
            extra={"provider": source, "expires_at": token.expires_at.isoformat()},
        )
        return token

    async def close(self) -> None:
        """Close HTTP client session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["HttpResponse", "HttpTransport", "DEFAULT_TIMEOUT_SECONDS"]
