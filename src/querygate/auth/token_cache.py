"""
Thread-safe token cache with expiration tracking.

In-memory caching of access tokens keyed by scope set. A cached token is
reused until it comes within a configurable buffer of its ``expires_on``,
so a token is never handed out moments before it lapses mid-query.

The executor never caches tokens on its own. Callers that want reuse wrap a
token source explicitly:

Example:
    >>> source = CachingTokenSource(DefaultCredentialTokenSource())
    >>> provider = CredentialProvider(default_source=source)
    >>> token = await provider.acquire_token([MYSQL_DATABASE_SCOPE])
    >>> # Second call within the token lifetime hits the cache
    >>> token = await provider.acquire_token([MYSQL_DATABASE_SCOPE])
"""

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Sequence

from querygate.types import CredentialTokenLike, TokenSource

logger = logging.getLogger(__name__)

# Refresh this long before the token's own expiry
TOKEN_REFRESH_BUFFER_MINS = 5


def scope_key(scopes: Sequence[str]) -> str:
    """Order-independent cache key for a scope set."""
    return " ".join(sorted(set(scopes)))


@dataclass
class CachedToken:
    """
    Token with acquisition timestamp for expiration tracking.

    Attributes:
        token: The cached credential token
        acquired_at: UTC timestamp when token was cached
    """

    token: CredentialTokenLike
    acquired_at: datetime

    def is_valid(self, buffer_mins: float = TOKEN_REFRESH_BUFFER_MINS) -> bool:
        """
        Check if token is still valid with safety buffer.

        Args:
            buffer_mins: Minutes before expiry to consider token invalid

        Returns:
            True if the token expires more than buffer_mins from now
        """
        now = datetime.now(UTC)
        return now < self.token.expires_on - timedelta(minutes=buffer_mins)


class TokenCache:
    """
    Thread-safe cache for access tokens.

    All operations (get/set/clear) are protected by a threading.Lock so the
    cache can be shared between event loops running in different threads.
    """

    def __init__(self, buffer_mins: float = TOKEN_REFRESH_BUFFER_MINS):
        self._tokens: dict[str, CachedToken] = {}
        self._lock = threading.Lock()
        self._buffer_mins = buffer_mins

    def get(self, key: str) -> CredentialTokenLike | None:
        """Return the cached token if still valid, None if expired or missing."""
        with self._lock:
            cached = self._tokens.get(key)
            if cached and cached.is_valid(self._buffer_mins):
                return cached.token
            return None

    def set(self, key: str, token: CredentialTokenLike) -> None:
        with self._lock:
            self._tokens[key] = CachedToken(token=token, acquired_at=datetime.now(UTC))

    def clear(self, key: str | None = None) -> None:
        """
        Clear one or all cached tokens.

        Args:
            key: Specific scope key to clear. If None, clears all tokens.
        """
        with self._lock:
            if key:
                self._tokens.pop(key, None)
            else:
                self._tokens.clear()

    def get_age(self, key: str) -> timedelta | None:
        """Age of a cached token for diagnostics, or None if not cached."""
        with self._lock:
            cached = self._tokens.get(key)
            if cached:
                return datetime.now(UTC) - cached.acquired_at
            return None


class CachingTokenSource:
    """TokenSource decorator that serves tokens from a TokenCache."""

    def __init__(self, source: TokenSource, cache: TokenCache | None = None):
        self._source = source
        self._cache = cache or TokenCache()

    @property
    def cache(self) -> TokenCache:
        return self._cache

    async def get_token(self, scopes: Sequence[str]) -> CredentialTokenLike:
        key = scope_key(scopes)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Using cached access token", extra={"resource": key})
            return cached

        token = await self._source.get_token(scopes)
        self._cache.set(key, token)
        return token

    async def close(self) -> None:
        close = getattr(self._source, "close", None)
        if close is not None:
            await close()


__all__ = [
    "TOKEN_REFRESH_BUFFER_MINS",
    "CachedToken",
    "CachingTokenSource",
    "TokenCache",
    "scope_key",
]
