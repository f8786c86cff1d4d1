from __future__ import annotations

from typing import Any, Dict, Optional, Union

from scopeward.logging import get_logger
from scopeward.service.authentication import Authentication
from scopeward.service.errors import AuthenticationFailed, MisconfiguredScope, RefreshFailed
from scopeward.service.issuance import (
    TokenPair,
    issue_access_token,
    issue_refresh_token,
    issue_tokens,
)
from scopeward.service.registry import ScopeRegistry, default_registry
from scopeward.service.scope import Scope
from scopeward.service.tokens import TokenCodec
from scopeward.storage.base import TokenStore

logger = get_logger(__name__)

ScopeRef = Union[str, Scope]


class Warden:
    """Per-request entry point for web integrations.

    Holds at most one ``Authentication`` per scope for the request and runs
    the scope hooks around failed/successful checks. Create one per request;
    never share it between requests.
    """

    def __init__(
        self,
        request: Any,
        *,
        registry: Optional[ScopeRegistry] = None,
        store: Optional[TokenStore] = None,
        codec: Optional[TokenCodec] = None,
    ) -> None:
        self.request = request
        self.registry = registry or default_registry
        self.store = store
        self.codec = codec
        self._authentications: Dict[str, Authentication] = {}
        self._owners: Dict[str, Any] = {}

    def scope(self, scope: ScopeRef) -> Scope:
        return self.registry.get(scope)

    def authentication_for(self, scope: ScopeRef) -> Authentication:
        scope = self.scope(scope)
        authentication = self._authentications.get(scope.name)
        if authentication is None:
            authentication = Authentication(scope, self.request, store=self.store)
            self._authentications[scope.name] = authentication
        return authentication

    # -- access ------------------------------------------------------------

    def ward_by(self, scope: ScopeRef) -> bool:
        return self.authentication_for(scope).authenticated

    def ward_by_or_fail(self, scope: ScopeRef) -> bool:
        """Require an authenticated session.

        On failure the scope's ``on_authenticate_failed`` hook runs and False
        is returned; without a hook ``AuthenticationFailed`` is raised.
        """
        authentication = self.authentication_for(scope)
        scope = authentication.scope
        if not authentication.authenticated:
            if scope.on_authenticate_failed is not None:
                scope.on_authenticate_failed(authentication)
                return False
            raise AuthenticationFailed("Unauthorized", detail={"scope": scope.name})
        if scope.on_authenticate_success is not None:
            scope.on_authenticate_success(authentication)
        return True

    def signed_in(self, scope: ScopeRef) -> bool:
        return self.ward_by(scope)

    def current_id(self, scope: ScopeRef) -> str:
        return self.authentication_for(scope).id

    def current_value_for_access_token(self, scope: ScopeRef) -> Optional[str]:
        return self.authentication_for(scope).value_for_access_token

    def current_owner(self, scope: ScopeRef) -> Any:
        """Application principal for the scope, loaded once per request.

        Raises:
            MisconfiguredScope: the scope has no ``load_owner`` hook.
        """
        authentication = self.authentication_for(scope)
        scope = authentication.scope
        if scope.load_owner is None:
            raise MisconfiguredScope(
                f"scope {scope.name} has no load_owner hook", detail={"scope": scope.name}
            )
        if scope.name not in self._owners:
            self._owners[scope.name] = scope.load_owner(
                authentication.id,
                authentication.value_for_access_token,
                authentication,
            )
        return self._owners[scope.name]

    # -- refresh -----------------------------------------------------------

    def validate_refresh_token_for(self, scope: ScopeRef) -> bool:
        """Require a valid refresh token (consuming it).

        On failure the scope's ``on_refresh_failed`` hook runs and False is
        returned; without a hook ``RefreshFailed`` (403) is raised.
        """
        authentication = self.authentication_for(scope)
        scope = authentication.scope
        if not authentication.refreshable:
            if scope.on_refresh_failed is not None:
                scope.on_refresh_failed(authentication)
                return False
            raise RefreshFailed("Forbidden", detail={"scope": scope.name})
        return True

    # -- issuance ----------------------------------------------------------

    def generate_access_token_for(self, scope: ScopeRef, id: Any, *args: Any) -> str:
        return issue_access_token(
            self.scope(scope), id, *args, store=self.store, codec=self.codec
        )

    def generate_refresh_token_for(self, scope: ScopeRef, id: Any, *args: Any) -> str:
        return issue_refresh_token(
            self.scope(scope), id, *args, store=self.store, codec=self.codec
        )

    def generate_tokens_for(self, scope: ScopeRef, id: Any, *args: Any) -> TokenPair:
        return issue_tokens(self.scope(scope), id, *args, store=self.store, codec=self.codec)


__all__ = ["Warden"]
