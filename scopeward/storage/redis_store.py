from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar
from urllib.parse import urlparse, urlunparse

from redis import BlockingConnectionPool, ConnectionPool, Redis
from redis.backoff import NoBackoff
from redis.commands.core import Script
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ReadOnlyError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from scopeward.config import Settings, get_settings
from scopeward.logging import get_logger
from scopeward.storage.base import TokenStore, ttl_seconds
from scopeward.storage.errors import PoolExhausted, StoreUnavailable

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_POOL_SIZE = 5
DEFAULT_POOL_TIMEOUT = 1.0

# BlockingConnectionPool signals a wait timeout with this ConnectionError message
_POOL_TIMEOUT_MESSAGE = "No connection available."


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask password in URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


def _is_readonly_error(exc: ResponseError) -> bool:
    """True when the server answered as a (demoted) read-only replica."""
    return isinstance(exc, ReadOnlyError) or str(exc).startswith("READONLY")


class RedisTokenStore(TokenStore):
    """Pooled Redis client for token records.

    Each logical call checks one connection out of a bounded pool. If the
    server rejects a command with ``READONLY`` (a failover left the socket
    bound to a replica) the connection is dropped, reopened, and the call is
    replayed exactly once. A second ``READONLY`` surfaces as
    ``StoreUnavailable``.
    """

    # KEYS[1]: record key. Returns the value (or nil) and removes the record
    # in a single server-side step.
    _GET_AND_DELETE_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if value then
  redis.call('DEL', KEYS[1])
end
return value
"""

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        namespace: Optional[str] = None,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.pool = pool
        self.namespace = namespace
        self._client_factory = client_factory or self._checkout
        self._get_and_delete_script: Optional[Script] = None

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        namespace: Optional[str] = None,
        size: int = DEFAULT_POOL_SIZE,
        pool_timeout: float = DEFAULT_POOL_TIMEOUT,
        socket_timeout: float = 5.0,
        reconnect_attempts: int = 1,
    ) -> "RedisTokenStore":
        pool = BlockingConnectionPool.from_url(
            url,
            max_connections=size,
            timeout=pool_timeout,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry=Retry(NoBackoff(), reconnect_attempts),
        )
        logger.info(
            "redis_pool_created",
            redis_url=_mask_url_password(url),
            namespace=namespace,
            size=size,
            pool_timeout=pool_timeout,
        )
        return cls(pool, namespace=namespace)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RedisTokenStore":
        settings = settings or get_settings()
        url = settings.resolved_redis_url()
        if not url:
            raise StoreUnavailable(
                "Redis URL is not configured; set REDIS_URL or REDIS_PROVIDER"
            )
        return cls.from_url(
            url,
            namespace=settings.redis_namespace,
            size=settings.redis_pool_size,
            pool_timeout=settings.redis_pool_timeout,
            socket_timeout=settings.redis_socket_timeout,
            reconnect_attempts=settings.redis_reconnect_attempts,
        )

    def _checkout(self) -> Redis:
        # A single-connection client holds one pooled connection until close()
        return Redis(connection_pool=self.pool, single_connection_client=True)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Check out a pooled client and always hand it back."""
        try:
            client = self._client_factory()
        except RedisConnectionError as exc:
            if str(exc) == _POOL_TIMEOUT_MESSAGE:
                logger.warning("redis_pool_exhausted")
                raise PoolExhausted(
                    "timed out waiting for a pooled store connection"
                ) from exc
            raise StoreUnavailable(
                "could not connect to the token store", {"error": str(exc)}
            ) from exc
        try:
            yield client
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.error(
                "redis_command_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise StoreUnavailable(
                "token store connection failed", {"error": str(exc)}
            ) from exc
        finally:
            client.close()

    def with_connection(self, fn: Callable[[Any], T]) -> T:
        """Run ``fn(client)`` on a pooled client with one failover retry."""
        with self.connection() as client:
            try:
                return fn(client)
            except ResponseError as exc:
                if not _is_readonly_error(exc):
                    raise
                logger.warning("store_readonly_retry", error=str(exc))
                client.connection.disconnect()
            try:
                return fn(client)
            except ResponseError as exc:
                if not _is_readonly_error(exc):
                    raise
                logger.error("store_readonly_after_retry", error=str(exc))
                raise StoreUnavailable(
                    "token store is still read-only after reconnecting",
                    {"error": str(exc)},
                ) from exc

    def get(self, key: str) -> Optional[str]:
        full_key = self._key(key)
        return self.with_connection(lambda conn: conn.get(full_key))

    def set(self, key: str, value: str, ttl: int) -> None:
        full_key = self._key(key)
        seconds = ttl_seconds(ttl)
        self.with_connection(lambda conn: conn.set(full_key, value, ex=seconds))

    def set_ttl(self, key: str, value: str, ttl: int) -> bool:
        full_key = self._key(key)
        seconds = ttl_seconds(ttl)
        # XX: only overwrite an existing key
        written = self.with_connection(
            lambda conn: conn.set(full_key, value, ex=seconds, xx=True)
        )
        return bool(written)

    def delete(self, key: str) -> None:
        full_key = self._key(key)
        self.with_connection(lambda conn: conn.delete(full_key))

    def _run_get_and_delete(self, conn: Any, full_key: str) -> Optional[str]:
        # Registered once; runs by SHA on whichever pooled client is checked out
        if self._get_and_delete_script is None:
            self._get_and_delete_script = conn.register_script(self._GET_AND_DELETE_SCRIPT)
        return self._get_and_delete_script(keys=[full_key], client=conn)

    def get_and_delete(self, key: str) -> Optional[str]:
        full_key = self._key(key)
        return self.with_connection(lambda conn: self._run_get_and_delete(conn, full_key))

    def ttl(self, key: str) -> Optional[int]:
        full_key = self._key(key)
        remaining = self.with_connection(lambda conn: conn.ttl(full_key))
        # -2: no such key, -1: key without expiry
        if remaining is None or remaining < 0:
            return None
        return int(remaining)

    def ping(self) -> bool:
        """Assert connectivity before serving traffic."""
        return bool(self.with_connection(lambda conn: conn.ping()))

    def close(self) -> None:
        self.pool.disconnect()


__all__ = ["RedisTokenStore", "DEFAULT_POOL_SIZE", "DEFAULT_POOL_TIMEOUT"]
