"""Token store interface.

Both backends expose the same six primitives. Each primitive is atomic at
the store level; ``get_and_delete`` in particular must never let two callers
observe the same value.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional, Union


def ttl_seconds(ttl: Union[int, float, timedelta]) -> int:
    """Normalize a TTL to whole seconds, rejecting non-positive values."""
    if isinstance(ttl, timedelta):
        ttl = ttl.total_seconds()
    seconds = int(ttl)
    if seconds <= 0:
        raise ValueError(f"ttl must be at least one second, got {ttl!r}")
    return seconds


class TokenStore(ABC):
    """Abstract key/value store with per-key expiry."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored at ``key`` or None when missing/expired."""

    @abstractmethod
    def set(self, key: str, value: str, ttl: int) -> None:
        """Store ``value`` at ``key``, expiring after ``ttl`` seconds."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are not an error."""

    @abstractmethod
    def get_and_delete(self, key: str) -> Optional[str]:
        """Atomically read and remove ``key``."""

    @abstractmethod
    def ttl(self, key: str) -> Optional[int]:
        """Remaining lifetime of ``key`` in seconds.

        Returns None when the key does not exist or carries no expiry.
        """

    @abstractmethod
    def set_ttl(self, key: str, value: str, ttl: int) -> bool:
        """Rewrite ``key`` with ``value`` and a fresh ``ttl`` if it still exists.

        A missing or expired key is never recreated; returns whether the
        record was rewritten.
        """

    def close(self) -> None:
        """Release any held resources."""


__all__ = ["TokenStore", "ttl_seconds"]
