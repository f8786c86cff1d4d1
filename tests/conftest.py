import os
import sys
from pathlib import Path

# Configure the environment before any imports that read settings
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/1")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from scopeward.service.registry import ScopeRegistry, default_registry  # noqa: E402
from scopeward.service.runtime import reset_store, set_store  # noqa: E402
from scopeward.storage.memory import MemoryTokenStore  # noqa: E402


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRequest:
    """Anything with a ``headers`` mapping is a valid request."""

    def __init__(self, headers=None) -> None:
        self.headers = dict(headers or {})


class CountingStore(MemoryTokenStore):
    """Memory store that records how often each primitive runs."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.calls = dict.fromkeys(
            ("get", "set", "delete", "get_and_delete", "ttl", "set_ttl"), 0
        )

    def get(self, key):
        self.calls["get"] += 1
        return super().get(key)

    def set(self, key, value, ttl):
        self.calls["set"] += 1
        return super().set(key, value, ttl)

    def delete(self, key):
        self.calls["delete"] += 1
        return super().delete(key)

    def get_and_delete(self, key):
        self.calls["get_and_delete"] += 1
        return super().get_and_delete(key)

    def ttl(self, key):
        self.calls["ttl"] += 1
        return super().ttl(key)

    def set_ttl(self, key, value, ttl):
        self.calls["set_ttl"] += 1
        return super().set_ttl(key, value, ttl)


def credential_headers(scope_prefix, id=None, access_token=None, refresh_token=None):
    headers = {}
    if id is not None:
        headers[f"X-{scope_prefix}-Id"] = str(id)
    if access_token is not None:
        headers[f"X-{scope_prefix}-Access-Token"] = access_token
    if refresh_token is not None:
        headers[f"X-{scope_prefix}-Refresh-Token"] = refresh_token
    return headers


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    """Counting in-memory store installed as the process-wide store."""
    token_store = CountingStore(clock=clock)
    set_store(token_store)
    return token_store


@pytest.fixture
def registry():
    return ScopeRegistry()


@pytest.fixture(autouse=True)
def reset_global_state():
    default_registry.clear()
    reset_store()
    yield
    default_registry.clear()
    reset_store()
