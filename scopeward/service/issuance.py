from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from scopeward.config import get_settings
from scopeward.logging import get_logger
from scopeward.service.errors import MisconfiguredScope
from scopeward.service.registry import ScopeRegistry, default_registry
from scopeward.service.runtime import get_store
from scopeward.service.scope import Scope
from scopeward.service.tokens import TokenCodec
from scopeward.storage.base import TokenStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: Optional[str] = None


def _resolve(scope: Union[str, Scope], registry: Optional[ScopeRegistry]) -> Scope:
    return (registry or default_registry).get(scope)


def _codec(codec: Optional[TokenCodec]) -> TokenCodec:
    return codec or TokenCodec.from_settings(get_settings())


def issue_access_token(
    scope: Union[str, Scope],
    id: Any,
    *args: Any,
    store: Optional[TokenStore] = None,
    registry: Optional[ScopeRegistry] = None,
    codec: Optional[TokenCodec] = None,
) -> str:
    """Mint an access token for ``id`` and persist it with the scope TTL.

    Extra positional args are handed to the scope's value derivation. Earlier
    tokens for the same id stay valid.
    """
    scope = _resolve(scope, registry)
    access_token = _codec(codec).access_token()
    (store or get_store()).set(
        scope.key_for_access_token(id, access_token),
        scope.value_for_access_token(access_token, *args),
        scope.access_token_ttl,
    )
    logger.info("access_token_issued", scope=scope.name, id=id, ttl=scope.access_token_ttl)
    return access_token


def issue_refresh_token(
    scope: Union[str, Scope],
    id: Any,
    *args: Any,
    store: Optional[TokenStore] = None,
    registry: Optional[ScopeRegistry] = None,
    codec: Optional[TokenCodec] = None,
) -> str:
    """Mint a single-use refresh token for ``id``.

    Raises:
        MisconfiguredScope: the scope disables refresh tokens.
    """
    scope = _resolve(scope, registry)
    if scope.disable_refresh_token:
        raise MisconfiguredScope(
            f"refresh tokens are disabled for scope {scope.name}",
            detail={"scope": scope.name},
        )
    refresh_token = _codec(codec).refresh_token()
    (store or get_store()).set(
        scope.key_for_refresh_token(id, refresh_token),
        scope.value_for_refresh_token(refresh_token, *args),
        scope.refresh_token_ttl,
    )
    logger.info("refresh_token_issued", scope=scope.name, id=id, ttl=scope.refresh_token_ttl)
    return refresh_token


def issue_tokens(
    scope: Union[str, Scope],
    id: Any,
    *args: Any,
    store: Optional[TokenStore] = None,
    registry: Optional[ScopeRegistry] = None,
    codec: Optional[TokenCodec] = None,
) -> TokenPair:
    """Access token plus, unless the scope disables them, a refresh token."""
    scope = _resolve(scope, registry)
    access_token = issue_access_token(scope, id, *args, store=store, codec=codec)
    refresh_token = None
    if scope.refresh_enabled:
        refresh_token = issue_refresh_token(scope, id, *args, store=store, codec=codec)
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


__all__ = ["TokenPair", "issue_access_token", "issue_refresh_token", "issue_tokens"]
