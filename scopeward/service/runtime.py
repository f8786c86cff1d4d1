from __future__ import annotations

import threading
from typing import Optional

from scopeward.config import get_settings, reset_settings_cache
from scopeward.logging import get_logger
from scopeward.storage.base import TokenStore
from scopeward.storage.errors import StoreError
from scopeward.storage.memory import MemoryTokenStore
from scopeward.storage.redis_store import RedisTokenStore

logger = get_logger(__name__)

_store: Optional[TokenStore] = None
_store_lock = threading.Lock()


def _build_store() -> TokenStore:
    settings = get_settings()
    if settings.use_memory_store:
        logger.warning(
            "memory_token_store_enabled",
            message="Tokens are kept in process memory and are lost on restart.",
            namespace=settings.redis_namespace,
        )
        return MemoryTokenStore(namespace=settings.redis_namespace)
    store = RedisTokenStore.from_settings(settings)
    try:
        store.ping()
    except StoreError as exc:
        logger.error("token_store_unreachable", error=exc.message, detail=exc.detail)
        store.close()
        raise
    logger.info("token_store_ready", backend="redis", namespace=settings.redis_namespace)
    return store


def get_store() -> TokenStore:
    """Return the process-wide token store, creating it on first use.

    Double-checked locking: the fast path skips the lock once built. A Redis
    store is pinged before it is installed; if that fails the error
    propagates and the next call tries again.
    """
    global _store
    if _store is not None:
        return _store
    with _store_lock:
        if _store is None:
            _store = _build_store()
        return _store


def set_store(store: Optional[TokenStore]) -> None:
    """Install an explicit store (e.g. a shared RedisTokenStore) for the process."""
    global _store
    with _store_lock:
        _store = store


def reset_store() -> None:
    """Close and forget the process-wide store and cached settings."""
    global _store
    with _store_lock:
        if _store is not None:
            try:
                _store.close()
            except Exception as exc:
                logger.warning("token_store_close_failed", error=str(exc))
        _store = None
    reset_settings_cache()


__all__ = ["get_store", "set_store", "reset_store"]
