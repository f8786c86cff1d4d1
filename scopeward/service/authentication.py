"""Per-request authentication against one scope.

An ``Authentication`` resolves two independent questions at most once each:

* access path: ``unknown -> authenticated | unauthenticated``, then
  ``authenticated -> signed out`` once ``sign_out()`` ran
* refresh path: ``unknown -> refreshable | not refreshable``

Nothing touches the store until one of them is asked. Once resolved, the
answer is memoized for the life of the instance, so repeated checks cost no
further round trips. Instances belong to a single request and must not be
shared across threads.
"""

from __future__ import annotations

from typing import Any, Optional

from scopeward.logging import get_logger
from scopeward.service.errors import AuthenticationFailed, InvalidState, MisconfiguredScope
from scopeward.service.runtime import get_store
from scopeward.service.scope import Scope
from scopeward.storage.base import TokenStore

logger = get_logger(__name__)


class Authentication:
    """Memoized authenticate / refresh state for one request and one scope."""

    def __init__(
        self, scope: Scope, request: Any, *, store: Optional[TokenStore] = None
    ) -> None:
        self.scope = scope
        self.request = request
        self._store = store
        self.credentials = scope.credential_source(self)

        self._authenticated: Optional[bool] = None
        self._signed_out = False
        self._refreshable: Optional[bool] = None
        self._id: Optional[str] = None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._access_token_key: Optional[str] = None
        self._value_for_access_token: Optional[str] = None
        self._value_for_refresh_token: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"Authentication(scope={self.scope.name!r}, "
            f"authenticated={self._authenticated!r}, refreshable={self._refreshable!r})"
        )

    @property
    def store(self) -> TokenStore:
        if self._store is None:
            self._store = get_store()
        return self._store

    # -- access path -------------------------------------------------------

    def authenticate_or_raise(self) -> "Authentication":
        """Validate the access token, once.

        Raises:
            AuthenticationFailed: the token is missing, empty, unknown or expired.
                Raised again (without touching the store) on later calls.
        """
        if self._authenticated is not None:
            if not self._authenticated:
                raise AuthenticationFailed("Unauthorized", detail={"scope": self.scope.name})
            return self

        id = self.credentials.retrieve_id()
        access_token = self.credentials.retrieve_access_token()
        key = self.scope.key_for_access_token(id, access_token)

        value: Optional[str] = None
        if access_token:
            value = self.store.get(key)

        if value is None:
            self._authenticated = False
            logger.info(
                "authentication_failed",
                scope=self.scope.name,
                id=id,
                reason="not_found" if access_token else "missing_token",
            )
            raise AuthenticationFailed("Unauthorized", detail={"scope": self.scope.name})

        self._authenticated = True
        self._id = id
        self._access_token = access_token
        self._access_token_key = key
        self._value_for_access_token = value
        logger.debug("authentication_succeeded", scope=self.scope.name, id=id)
        return self

    def authenticate(self) -> "Authentication":
        """Non-raising authenticate; inspect ``authenticated`` afterwards."""
        try:
            self.authenticate_or_raise()
        except AuthenticationFailed:
            pass
        return self

    @property
    def authenticated(self) -> bool:
        if self._authenticated is None:
            self.authenticate()
        return bool(self._authenticated)

    @property
    def value_for_access_token(self) -> Optional[str]:
        if self._authenticated is None:
            self.authenticate()
        return self._value_for_access_token

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def access_token_key(self) -> Optional[str]:
        return self._access_token_key

    # -- refresh path ------------------------------------------------------

    def _require_refresh_enabled(self) -> None:
        if self.scope.disable_refresh_token:
            raise MisconfiguredScope(
                f"refresh tokens are disabled for scope {self.scope.name}",
                detail={"scope": self.scope.name},
            )

    def validate_refresh_token_or_raise(self) -> "Authentication":
        """Consume the refresh token, once.

        The record is read and deleted in one atomic store step, so a refresh
        token is spent by its first successful validation even if the caller
        fails afterwards.

        Raises:
            MisconfiguredScope: the scope disables refresh tokens.
            AuthenticationFailed: the token is missing, empty, unknown, expired
                or already consumed.
        """
        self._require_refresh_enabled()
        if self._refreshable is not None:
            if not self._refreshable:
                raise AuthenticationFailed("Forbidden", detail={"scope": self.scope.name})
            return self

        id = self.credentials.retrieve_id()
        refresh_token = self.credentials.retrieve_refresh_token()
        key = self.scope.key_for_refresh_token(id, refresh_token)

        value: Optional[str] = None
        if refresh_token:
            value = self.store.get_and_delete(key)

        if value is None:
            self._refreshable = False
            logger.info(
                "refresh_validation_failed",
                scope=self.scope.name,
                id=id,
                reason="not_found" if refresh_token else "missing_token",
            )
            raise AuthenticationFailed("Forbidden", detail={"scope": self.scope.name})

        self._refreshable = True
        self._id = id
        self._refresh_token = refresh_token
        self._value_for_refresh_token = value
        logger.info("refresh_token_consumed", scope=self.scope.name, id=id)
        return self

    def validate_refresh_token(self) -> "Authentication":
        """Non-raising refresh validation; inspect ``refreshable`` afterwards."""
        try:
            self.validate_refresh_token_or_raise()
        except AuthenticationFailed:
            pass
        return self

    @property
    def refreshable(self) -> bool:
        if self._refreshable is None:
            self.validate_refresh_token()
        return bool(self._refreshable)

    @property
    def value_for_refresh_token(self) -> Optional[str]:
        if self._refreshable is None:
            self.validate_refresh_token()
        return self._value_for_refresh_token

    # -- identity ----------------------------------------------------------

    @property
    def id(self) -> str:
        """Identity proven by the access token, else by the refresh token.

        Falling back to the refresh path consumes the refresh token.

        Raises:
            AuthenticationFailed: neither path resolved an id.
        """
        if not self.authenticated and self.scope.refresh_enabled:
            self.validate_refresh_token()
        if self._id is None:
            raise AuthenticationFailed("Unauthorized", detail={"scope": self.scope.name})
        return self._id

    # -- session management ------------------------------------------------

    def sign_out(self) -> bool:
        """Delete the access-token record of this authenticated session.

        The paired refresh token is left alone and stays valid until used or
        expired. Returns False when there is no authenticated session.

        Afterwards the instance reports ``authenticated == False`` and the
        access-token TTL methods raise ``InvalidState``.
        """
        if self._authenticated is not True:
            logger.debug("sign_out_skipped", scope=self.scope.name, signed_out=self._signed_out)
            return False
        self.store.delete(self._access_token_key)
        self._authenticated = False
        self._signed_out = True
        logger.info("signed_out", scope=self.scope.name, id=self._id)
        return True

    @property
    def signed_out(self) -> bool:
        return self._signed_out

    def _require_authenticated(self) -> str:
        if self._authenticated is not True or self._access_token_key is None:
            message = (
                "session was signed out"
                if self._signed_out
                else "access token TTL requires a successfully authenticated session"
            )
            raise InvalidState(
                message,
                detail={
                    "scope": self.scope.name,
                    "authenticated": self._authenticated,
                    "signed_out": self._signed_out,
                },
            )
        return self._access_token_key

    def ttl_for_access_token(self) -> Optional[int]:
        """Seconds left on the access-token record (None if already gone)."""
        key = self._require_authenticated()
        return self.store.ttl(key)

    def set_ttl_for_access_token(self, seconds: int) -> bool:
        """Rewrite the access-token record with the same value and a new TTL.

        Only a record that still exists is rewritten. Returns False when it
        expired or was revoked by another request since authentication.
        """
        key = self._require_authenticated()
        rewritten = self.store.set_ttl(key, self._value_for_access_token, seconds)
        if not rewritten:
            logger.info("access_token_ttl_not_extended", scope=self.scope.name, id=self._id)
        return rewritten


__all__ = ["Authentication"]
