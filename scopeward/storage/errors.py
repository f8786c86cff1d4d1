from __future__ import annotations

from typing import Any, Dict, Optional


class StoreError(Exception):
    """Base class for token store infrastructure failures."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class PoolExhausted(StoreError):
    """No pooled connection became available within the pool timeout."""


class StoreUnavailable(StoreError):
    """The store could not serve the call, including after the failover retry."""


__all__ = ["StoreError", "PoolExhausted", "StoreUnavailable"]
