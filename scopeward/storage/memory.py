from __future__ import annotations

import math
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from scopeward.logging import get_logger
from scopeward.storage.base import TokenStore, ttl_seconds


class MemoryTokenStore(TokenStore):
    """In-process token store for tests and single-process development.

    Records expire lazily: an expired record is treated as missing and purged
    on the next access. ``clock`` returns monotonic seconds and can be replaced
    to simulate elapsed time.
    """

    def __init__(
        self,
        *,
        namespace: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = get_logger(__name__)
        self.namespace = namespace
        self._clock = clock
        self._records: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.RLock()

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _live(self, key: str) -> Optional[Tuple[str, float]]:
        record = self._records.get(key)
        if record is None:
            return None
        if record[1] <= self._clock():
            self._records.pop(key, None)
            return None
        return record

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            record = self._live(self._key(key))
            return record[0] if record else None

    def set(self, key: str, value: str, ttl: int) -> None:
        expires_at = self._clock() + ttl_seconds(ttl)
        with self._lock:
            self._records[self._key(key)] = (str(value), expires_at)

    def set_ttl(self, key: str, value: str, ttl: int) -> bool:
        seconds = ttl_seconds(ttl)
        with self._lock:
            full_key = self._key(key)
            if self._live(full_key) is None:
                return False
            self._records[full_key] = (str(value), self._clock() + seconds)
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(self._key(key), None)

    def get_and_delete(self, key: str) -> Optional[str]:
        with self._lock:
            full_key = self._key(key)
            record = self._live(full_key)
            if record is None:
                return None
            self._records.pop(full_key, None)
            return record[0]

    def ttl(self, key: str) -> Optional[int]:
        with self._lock:
            record = self._live(self._key(key))
            if record is None:
                return None
            return max(0, math.ceil(record[1] - self._clock()))

    def keys(self) -> list[str]:
        """Live keys, without the namespace prefix (useful in tests)."""
        with self._lock:
            prefix = f"{self.namespace}:" if self.namespace else ""
            live = [key for key in list(self._records) if self._live(key)]
            return [key[len(prefix):] for key in live]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def close(self) -> None:
        self.clear()


__all__ = ["MemoryTokenStore"]
