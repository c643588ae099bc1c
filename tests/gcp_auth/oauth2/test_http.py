"""Tests for HttpTransport token exchange and error mapping."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from gcp_auth.errors import TokenEndpointUnavailableError, TokenExchangeError
from gcp_auth.oauth2.http import HttpTransport
from gcp_auth.oauth2.models import ScopeSet
from gcp_auth.types import ErrorCategory

TOKEN_URI = "https://oauth2.googleapis.com/token"


def _response(status, body, headers=None):
    """Create a mock async context manager for an HTTP response."""
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.headers = headers or {}
    mock_resp.text = AsyncMock(return_value=body if isinstance(body, str) else json.dumps(body))
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)
    return mock_resp


def _undecodable_response(status, raw=b"\xff\xfe invalid \xc3"):
    """Response whose body is not valid UTF-8."""
    mock_resp = _response(status, "")

    async def text(encoding=None, errors="strict"):
        return raw.decode("utf-8", errors)

    mock_resp.text = AsyncMock(side_effect=text)
    return mock_resp


def _mock_session(post=None, get=None):
    mock_session = MagicMock()
    mock_session.closed = False
    mock_session.close = AsyncMock()
    if post is not None:
        mock_session.post = MagicMock(return_value=post)
    if get is not None:
        mock_session.get = MagicMock(return_value=get)
    return mock_session


class TestEnsureSession:
    @pytest.mark.asyncio
    async def test_creates_session_lazily(self):
        transport = HttpTransport()
        assert transport._session is None
        session = await transport._ensure_session()
        try:
            assert isinstance(session, aiohttp.ClientSession)
            assert await transport._ensure_session() is session
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        session = _mock_session()
        transport = HttpTransport(session=session)
        await transport.close()
        session.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_owned_session(self):
        transport = HttpTransport()
        session = await transport._ensure_session()
        await transport.close()
        assert session.closed
        assert transport._session is None


class TestRequestToken:
    """Tests for the token endpoint exchange."""

    @pytest.mark.asyncio
    async def test_success(self):
        session = _mock_session(post=_response(200, {"access_token": "ya29.x", "expires_in": 3599}))
        transport = HttpTransport(timeout_seconds=12, session=session)

        token = await transport.request_token(
            TOKEN_URI, {"grant_type": "g", "assertion": "a"}, scopes=["s1"]
        )

        assert token.access_token == "ya29.x"
        assert token.scopes == ScopeSet(["s1"])
        args, kwargs = session.post.call_args
        assert args[0] == TOKEN_URI
        assert kwargs["data"] == {"grant_type": "g", "assertion": "a"}
        assert kwargs["timeout"].total == 12

    @pytest.mark.parametrize(
        "status,category",
        [
            (400, ErrorCategory.AUTH),
            (401, ErrorCategory.AUTH),
            (403, ErrorCategory.AUTH),
            (404, ErrorCategory.PERMANENT),
            (429, ErrorCategory.TRANSIENT),
            (503, ErrorCategory.TRANSIENT),
        ],
    )
    @pytest.mark.asyncio
    async def test_error_status(self, status, category):
        body = '{"error": "invalid_grant", "error_description": "Bad"}'
        transport = HttpTransport(session=_mock_session(post=_response(status, body)))

        with pytest.raises(TokenExchangeError) as exc_info:
            await transport.request_token(TOKEN_URI, {"grant_type": "g"})

        assert exc_info.value.status == status
        assert exc_info.value.body == body
        assert exc_info.value.category == category
        assert f"HTTP {status}" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_body_truncated_in_message(self):
        body = "x" * 5000
        transport = HttpTransport(session=_mock_session(post=_response(500, body)))

        with pytest.raises(TokenExchangeError) as exc_info:
            await transport.request_token(TOKEN_URI, {})

        assert len(str(exc_info.value)) < 400
        assert exc_info.value.body == body

    @pytest.mark.asyncio
    async def test_success_without_access_token(self):
        transport = HttpTransport(session=_mock_session(post=_response(200, {"expires_in": 60})))

        with pytest.raises(TokenExchangeError, match="unusable") as exc_info:
            await transport.request_token(TOKEN_URI, {})

        assert exc_info.value.status == 200
        assert exc_info.value.category == ErrorCategory.PERMANENT

    @pytest.mark.asyncio
    async def test_success_with_invalid_json(self):
        transport = HttpTransport(session=_mock_session(post=_response(200, "<html>")))

        with pytest.raises(TokenExchangeError, match="unusable"):
            await transport.request_token(TOKEN_URI, {})

    @pytest.mark.parametrize("expires_in", [0, -5])
    @pytest.mark.asyncio
    async def test_non_positive_expires_in_rejected(self, expires_in):
        transport = HttpTransport(
            session=_mock_session(
                post=_response(200, {"access_token": "ya29.x", "expires_in": expires_in})
            )
        )

        with pytest.raises(TokenExchangeError, match="expires_in") as exc_info:
            await transport.request_token(TOKEN_URI, {})

        assert exc_info.value.status == 200
        assert not exc_info.value.is_retryable

    @pytest.mark.asyncio
    async def test_undecodable_error_body(self):
        response = _undecodable_response(500)
        transport = HttpTransport(session=_mock_session(post=response))

        with pytest.raises(TokenExchangeError) as exc_info:
            await transport.request_token(TOKEN_URI, {})

        assert exc_info.value.status == 500
        assert "\ufffd" in exc_info.value.body
        response.text.assert_awaited_once_with(errors="replace")

    @pytest.mark.asyncio
    async def test_undecodable_success_body(self):
        transport = HttpTransport(session=_mock_session(post=_undecodable_response(200)))

        with pytest.raises(TokenExchangeError, match="unusable"):
            await transport.request_token(TOKEN_URI, {})

    @pytest.mark.asyncio
    async def test_connection_error(self):
        session = _mock_session()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        transport = HttpTransport(session=session)

        with pytest.raises(TokenEndpointUnavailableError) as exc_info:
            await transport.request_token(TOKEN_URI, {})

        assert exc_info.value.status is None
        assert exc_info.value.is_retryable
        assert isinstance(exc_info.value, TokenExchangeError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        response = _response(200, {})
        response.__aenter__ = AsyncMock(side_effect=asyncio.TimeoutError())
        transport = HttpTransport(session=_mock_session(post=response))

        with pytest.raises(TokenEndpointUnavailableError):
            await transport.request_token(TOKEN_URI, {})


class TestGet:
    @pytest.mark.asyncio
    async def test_get_returns_status_body_headers(self):
        response = _response(200, "hello", headers={"Metadata-Flavor": "Google"})
        session = _mock_session(get=response)
        transport = HttpTransport(session=session)

        result = await transport.get("http://h/", headers={"A": "b"}, timeout_seconds=2)

        assert result.status == 200
        assert result.body == "hello"
        assert result.headers["Metadata-Flavor"] == "Google"
        assert result.ok
        _, kwargs = session.get.call_args
        assert kwargs["headers"] == {"A": "b"}
        assert kwargs["timeout"].total == 2

    @pytest.mark.asyncio
    async def test_get_replaces_undecodable_bytes(self):
        response = _undecodable_response(200)
        transport = HttpTransport(session=_mock_session(get=response))

        result = await transport.get("http://h/")

        assert result.body.startswith("\ufffd")
        response.text.assert_awaited_once_with(errors="replace")


class TestExchange:
    @pytest.mark.asyncio
    async def test_json_body_and_headers(self):
        session = _mock_session(post=_response(200, {"accessToken": "ya29.imp"}))
        transport = HttpTransport(session=session)

        data = await transport.exchange(
            "https://iam/generate",
            json_body={"scope": ["s1"], "lifetime": "3600s"},
            headers={"Authorization": "Bearer src"},
        )

        assert data == {"accessToken": "ya29.imp"}
        _, kwargs = session.post.call_args
        assert kwargs["json"] == {"scope": ["s1"], "lifetime": "3600s"}
        assert kwargs["headers"] == {"Authorization": "Bearer src"}
        assert "data" not in kwargs

    @pytest.mark.asyncio
    async def test_parse_failure_is_unusable_response(self):
        transport = HttpTransport(session=_mock_session(post=_response(200, {"other": 1})))

        with pytest.raises(TokenExchangeError, match="unusable") as exc_info:
            await transport.exchange(
                "https://iam/generate", json_body={}, parse=lambda data: data["accessToken"]
            )

        assert isinstance(exc_info.value.cause, KeyError)
        assert exc_info.value.status == 200
