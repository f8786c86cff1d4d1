from __future__ import annotations

import threading
from dataclasses import fields
from typing import Any, Dict, List, Optional, Union

from scopeward.config import get_settings
from scopeward.logging import get_logger
from scopeward.service.errors import DuplicateScope, MisconfiguredScope
from scopeward.service.scope import Scope, normalize_scope_name

logger = get_logger(__name__)

# Option names accepted for compatibility with existing scope definitions
_OPTION_ALIASES = {
    "params_class": "credential_source",
    "expire_time_for_access_token": "access_token_ttl",
    "expire_time_for_refresh_token": "refresh_token_ttl",
    "value_for_access_token": "value_for_access_token_fn",
    "value_for_refresh_token": "value_for_refresh_token_fn",
}

_SCOPE_OPTIONS = frozenset(f.name for f in fields(Scope)) - {"name"}


def build_scope(name: Any, **options: Any) -> Scope:
    """Build a Scope from keyword options, filling TTL defaults from settings."""
    resolved: Dict[str, Any] = {}
    for option, value in options.items():
        key = _OPTION_ALIASES.get(option, option)
        if key not in _SCOPE_OPTIONS:
            raise MisconfiguredScope(
                f"unknown scope option: {option}",
                detail={"scope": str(name), "option": option},
            )
        resolved[key] = value
    settings = get_settings()
    resolved.setdefault("access_token_ttl", settings.default_access_token_ttl)
    resolved.setdefault("refresh_token_ttl", settings.default_refresh_token_ttl)
    return Scope(name=name, **resolved)


class ScopeRegistry:
    """Process-wide mapping from canonical scope name to Scope.

    Reads are safe from any thread. Register/remove are meant for startup,
    shutdown and test teardown; callers mutating during live traffic must
    serialize that themselves.
    """

    def __init__(self) -> None:
        self._scopes: Dict[str, Scope] = {}
        self._lock = threading.RLock()

    def register(self, scope: Union[str, Scope], **options: Any) -> Scope:
        """Register a scope by name (with options) or a prebuilt Scope.

        Raises:
            DuplicateScope: a scope with the same canonical name exists.
        """
        if isinstance(scope, Scope):
            if options:
                raise MisconfiguredScope(
                    "options cannot be combined with a prebuilt Scope",
                    detail={"scope": scope.name},
                )
            built = scope
        else:
            built = build_scope(scope, **options)
        with self._lock:
            if built.name in self._scopes:
                raise DuplicateScope(
                    f"Scope {built.name} already defined", detail={"scope": built.name}
                )
            self._scopes[built.name] = built
        logger.info(
            "scope_registered",
            scope=built.name,
            refresh_enabled=built.refresh_enabled,
            access_token_ttl=built.access_token_ttl,
            refresh_token_ttl=built.refresh_token_ttl,
        )
        return built

    def remove(self, name: Union[str, Scope]) -> bool:
        """Remove a scope; returns whether one was registered."""
        key = normalize_scope_name(name)
        with self._lock:
            removed = self._scopes.pop(key, None)
        if removed is not None:
            logger.info("scope_removed", scope=key)
        return removed is not None

    def find(self, name: Union[str, Scope]) -> Optional[Scope]:
        if isinstance(name, Scope):
            return name
        return self._scopes.get(normalize_scope_name(name))

    def get(self, name: Union[str, Scope]) -> Scope:
        """Like find(), but an unknown name is a configuration error."""
        scope = self.find(name)
        if scope is None:
            raise MisconfiguredScope(
                f"Scope {normalize_scope_name(name)} is not registered",
                detail={"scope": normalize_scope_name(name)},
            )
        return scope

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._scopes)

    def clear(self) -> None:
        with self._lock:
            self._scopes.clear()

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, (str, Scope)):
            return False
        return self.find(name) is not None

    def __len__(self) -> int:
        return len(self._scopes)


default_registry = ScopeRegistry()


def register_scope(name: Union[str, Scope], **options: Any) -> Scope:
    return default_registry.register(name, **options)


def remove_scope(name: Union[str, Scope]) -> bool:
    return default_registry.remove(name)


def find_scope(name: Union[str, Scope]) -> Optional[Scope]:
    return default_registry.find(name)


__all__ = [
    "ScopeRegistry",
    "build_scope",
    "default_registry",
    "register_scope",
    "remove_scope",
    "find_scope",
]
