"""
Token cache and per-key refresh coordination.

Tokens are cached per scope set (``ScopeSet.cache_key``) and refreshed
lazily by the first caller that finds them missing or inside the safety
margin. Concurrent callers for the same key share one refresh task:

    EMPTY -> REFRESHING -> FRESH -> STALE -> REFRESHING -> FRESH
                                                        -> FAILED

A failed refresh never discards the previous token and never poisons the
key; the next caller starts a new refresh. Callers are responsible for
deciding whether an error is worth retrying.

All state is mutated on the event loop thread only.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from gcp_auth.errors import ExpiredTokenError
from gcp_auth.logging import log_operation, set_log_context
from gcp_auth.oauth2.models import ScopeSet, Token
from gcp_auth.types import TokenSource

logger = logging.getLogger(__name__)

# Default token refresh buffer (5 minutes before expiry)
DEFAULT_SAFETY_MARGIN_SECONDS = 300


class EntryState(Enum):
    """Lifecycle state of one cache key."""

    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass
class CacheEntry:
    """
    Cached token for one scope set plus its in-flight refresh.

    Attributes:
        token: Last successfully acquired token
        refresh: Refresh task shared by all current waiters
        waiters: Number of callers awaiting ``refresh``
        last_error: Exception raised by the most recent failed refresh
    """

    token: Token | None = None
    refresh: asyncio.Task | None = None
    waiters: int = 0
    last_error: Exception | None = None


class TokenCache:
    """
    In-memory token store keyed by scope set.

    Example:
        >>> cache = TokenCache(safety_margin_seconds=300)
        >>> cache.put(token)
        >>> cache.get(["https://www.googleapis.com/auth/cloud-platform"])
        Token(access_token='****', ...)
    """

    def __init__(self, safety_margin_seconds: float = DEFAULT_SAFETY_MARGIN_SECONDS):
        if safety_margin_seconds < 0:
            raise ValueError(f"safety_margin_seconds must be >= 0, got {safety_margin_seconds}")
        self.safety_margin_seconds = safety_margin_seconds
        self._entries: dict[str, CacheEntry] = {}

    def entry(self, scopes: ScopeSet | Iterable[str]) -> CacheEntry:
        """Get or create the entry for a scope set."""
        key = ScopeSet.of(scopes).cache_key
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = CacheEntry()
        return entry

    def is_fresh(self, token: Token | None, now: datetime | None = None) -> bool:
        return token is not None and not token.is_expired(self.safety_margin_seconds, now)

    def get(self, scopes: ScopeSet | Iterable[str]) -> Token | None:
        """
        Get cached token if still fresh.

        Returns:
            Token outside the safety margin, None if stale or not cached.
        """
        entry = self._entries.get(ScopeSet.of(scopes).cache_key)
        if entry and self.is_fresh(entry.token):
            return entry.token
        return None

    def peek(self, scopes: ScopeSet | Iterable[str]) -> Token | None:
        """Get cached token regardless of freshness."""
        entry = self._entries.get(ScopeSet.of(scopes).cache_key)
        return entry.token if entry else None

    def put(self, token: Token, scopes: ScopeSet | Iterable[str] | None = None) -> None:
        """
        Store a token, replacing any previous one for the key.

        Args:
            token: Token to cache
            scopes: Key to store under (default: token.scopes)
        """
        entry = self.entry(token.scopes if scopes is None else scopes)
        entry.token = token
        entry.last_error = None

    def invalidate(self, scopes: ScopeSet | Iterable[str]) -> None:
        """Drop the cached token for a key. An in-flight refresh is left running."""
        entry = self._entries.get(ScopeSet.of(scopes).cache_key)
        if entry:
            entry.token = None
            entry.last_error = None

    def clear(self) -> None:
        """Drop every cached token and cancel in-flight refreshes."""
        for entry in self._entries.values():
            if entry.refresh is not None and not entry.refresh.done():
                entry.refresh.cancel()
        self._entries.clear()

    def last_error(self, scopes: ScopeSet | Iterable[str]) -> Exception | None:
        """Exception from the most recent failed refresh, cleared on success."""
        entry = self._entries.get(ScopeSet.of(scopes).cache_key)
        return entry.last_error if entry else None

    def entry_state(
        self, scopes: ScopeSet | Iterable[str], now: datetime | None = None
    ) -> EntryState:
        entry = self._entries.get(ScopeSet.of(scopes).cache_key)
        if entry is None:
            return EntryState.EMPTY
        if entry.refresh is not None and not entry.refresh.done():
            return EntryState.REFRESHING
        if entry.last_error is not None:
            return EntryState.FAILED
        if entry.token is None:
            return EntryState.EMPTY
        if self.is_fresh(entry.token, now):
            return EntryState.FRESH
        return EntryState.STALE

    def get_cached_token_info(self, scopes: ScopeSet | Iterable[str]) -> dict[str, Any] | None:
        """
        Get information about a cached token for diagnostics.

        Returns:
            Dict with token info, or None if no token cached
        """
        scope_set = ScopeSet.of(scopes)
        token = self.peek(scope_set)
        if token is None:
            return None

        return {
            "scope_key": scope_set.cache_key,
            "expires_at": token.expires_at.isoformat(),
            "remaining_seconds": token.remaining_lifetime.total_seconds(),
            "state": self.entry_state(scope_set).value,
            "token_type": token.token_type,
        }

    def __len__(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.token is not None)


class RefreshCoordinator:
    """
    Serves tokens from a TokenCache, refreshing at most once per key at a time.

    The refresh runs in its own task. Waiters await it through
    ``asyncio.shield`` so one cancelled caller does not abort a refresh other
    callers depend on. When the last waiter is cancelled the refresh task
    is cancelled and the key returns to STALE.
    """

    def __init__(self, cache: TokenCache | None = None):
        self.cache = cache or TokenCache()

    async def get_or_refresh(
        self,
        provider: TokenSource,
        scopes: ScopeSet | Iterable[str] = (),
        force_refresh: bool = False,
    ) -> Token:
        """
        Return a fresh token for scopes, refreshing through provider if needed.

        Args:
            provider: Token source to refresh from
            scopes: Requested scopes; order and duplicates do not matter
            force_refresh: Refresh even if the cached token is fresh

        Returns:
            Token whose expiry is beyond the safety margin at refresh time

        Raises:
            AuthEngineError: The shared refresh failed; every waiter receives
                the same exception object
        """
        scope_set = ScopeSet.of(scopes)
        entry = self.cache.entry(scope_set)

        if not force_refresh and self.cache.is_fresh(entry.token):
            logger.debug(
                "Using cached token",
                extra={
                    "scope_key": scope_set.cache_key,
                    "remaining_seconds": entry.token.remaining_lifetime.total_seconds(),
                },
            )
            return entry.token

        task = entry.refresh
        if task is None or task.done():
            task = asyncio.create_task(self._refresh(provider, scope_set, entry))
            entry.refresh = task
        else:
            logger.debug(
                "Joining in-flight token refresh",
                extra={"scope_key": scope_set.cache_key, "waiters": entry.waiters + 1},
            )

        entry.waiters += 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if entry.waiters == 1 and not task.done():
                task.cancel()
                if entry.refresh is task:
                    entry.refresh = None
                # Key reads STALE, not FAILED from an earlier refresh
                entry.last_error = None
                logger.debug(
                    "Token refresh cancelled, no callers left waiting",
                    extra={"scope_key": scope_set.cache_key},
                )
            raise
        finally:
            entry.waiters -= 1

    async def _refresh(self, provider: TokenSource, scopes: ScopeSet, entry: CacheEntry) -> Token:
        kind = getattr(provider, "kind", type(provider).__name__)
        # Runs in its own task, so the context does not leak to callers
        set_log_context(provider=kind, operation="token_refresh", scope_key=scopes.cache_key)
        try:
            with log_operation(
                logger, "token_refresh", provider=kind, scope_key=scopes.cache_key
            ):
                token = await provider.token(scopes)
            if token.is_expired(0):
                raise ExpiredTokenError(
                    f"{kind} returned a token that expired at {token.expires_at.isoformat()}"
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            entry.last_error = e
            logger.debug(
                "Token refresh failed, previous token kept",
                extra={
                    "provider": kind,
                    "scope_key": scopes.cache_key,
                    "error_type": type(e).__name__,
                    "state": EntryState.FAILED.value,
                },
            )
            raise
        finally:
            if entry.refresh is asyncio.current_task():
                entry.refresh = None

        entry.token = token
        entry.last_error = None

        if not self.cache.is_fresh(token):
            logger.warning(
                "Provider returned a token that expires within the safety margin",
                extra={
                    "provider": kind,
                    "expires_at": token.expires_at.isoformat(),
                    "safety_margin_seconds": self.cache.safety_margin_seconds,
                },
            )
        else:
            logger.info(
                f"Token valid until {token.expires_at.isoformat()}",
                extra={"provider": kind, "scope_key": scopes.cache_key},
            )
        return token


__all__ = [
    "CacheEntry",
    "DEFAULT_SAFETY_MARGIN_SECONDS",
    "EntryState",
    "RefreshCoordinator",
    "TokenCache",
]
