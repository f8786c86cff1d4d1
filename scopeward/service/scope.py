"""Scope configuration.

A scope is a named authentication domain (``user``, ``admin``...) carrying
its own token lifetimes, store key/value derivation and integration hooks.
Scopes are immutable once built; register them through
``scopeward.service.registry``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

import inflection

from scopeward.config import DEFAULT_ACCESS_TOKEN_TTL, DEFAULT_REFRESH_TOKEN_TTL
from scopeward.service.credentials import CredentialSource, HeaderCredentialSource
from scopeward.service.errors import MisconfiguredScope
from scopeward.storage.base import ttl_seconds

if TYPE_CHECKING:
    from scopeward.service.authentication import Authentication

AuthHook = Callable[["Authentication"], Any]
ValueDeriver = Callable[..., str]
OwnerLoader = Callable[[Any, Optional[str], "Authentication"], Any]
CredentialSourceFactory = Callable[["Authentication"], CredentialSource]


def normalize_scope_name(name: Any) -> str:
    """Canonical scope name: lowercased and singularized (``Users`` -> ``user``).

    Singularization follows the Rails inflector rules, which apply to the
    trailing word, so ``admin_users`` becomes ``admin_user``.
    """
    if isinstance(name, Scope):
        return name.name
    raw = str(name).strip().lower()
    if not raw:
        raise MisconfiguredScope("scope name must not be empty")
    return inflection.singularize(raw)


def camelize(name: str) -> str:
    """``admin_user`` -> ``AdminUser``."""
    return inflection.camelize(name, uppercase_first_letter=True)


def _key_part(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Scope:
    """Immutable configuration bundle for one authentication domain.

    Hooks:
        on_authenticate_failed / on_authenticate_success / on_refresh_failed
            called with the ``Authentication`` by the integration layer
            (``Warden``), never by the authentication state machine itself.
        load_owner
            ``load_owner(id, value_for_access_token, authentication)``
            resolves the application principal for ``Warden.current_owner``.
        value_for_access_token / value_for_refresh_token
            ``fn(token, *extra) -> str`` computes the stored record value;
            the token itself is stored when unset.
    """

    name: str
    credential_source: CredentialSourceFactory = HeaderCredentialSource
    disable_refresh_token: bool = False
    access_token_ttl: Union[int, timedelta] = DEFAULT_ACCESS_TOKEN_TTL
    refresh_token_ttl: Union[int, timedelta] = DEFAULT_REFRESH_TOKEN_TTL
    value_for_access_token_fn: Optional[ValueDeriver] = field(default=None, repr=False)
    value_for_refresh_token_fn: Optional[ValueDeriver] = field(default=None, repr=False)
    on_authenticate_failed: Optional[AuthHook] = field(default=None, repr=False)
    on_authenticate_success: Optional[AuthHook] = field(default=None, repr=False)
    on_refresh_failed: Optional[AuthHook] = field(default=None, repr=False)
    load_owner: Optional[OwnerLoader] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_scope_name(self.name))
        object.__setattr__(self, "access_token_ttl", ttl_seconds(self.access_token_ttl))
        object.__setattr__(self, "refresh_token_ttl", ttl_seconds(self.refresh_token_ttl))
        for hook_name in (
            "credential_source",
            "value_for_access_token_fn",
            "value_for_refresh_token_fn",
            "on_authenticate_failed",
            "on_authenticate_success",
            "on_refresh_failed",
            "load_owner",
        ):
            hook = getattr(self, hook_name)
            if hook is not None and not callable(hook):
                raise MisconfiguredScope(
                    f"scope option {hook_name} must be callable",
                    detail={"scope": self.name, "option": hook_name},
                )

    @property
    def refresh_enabled(self) -> bool:
        return not self.disable_refresh_token

    @property
    def header_prefix(self) -> str:
        return camelize(self.name)

    def key_for_access_token(self, id: Any, access_token: Optional[str]) -> str:
        return f"{self.name}_{_key_part(id)}_access_token_{_key_part(access_token)}"

    def key_for_refresh_token(self, id: Any, refresh_token: Optional[str]) -> str:
        return f"{self.name}_{_key_part(id)}_refresh_token_{_key_part(refresh_token)}"

    def value_for_access_token(self, access_token: str, *args: Any) -> str:
        if self.value_for_access_token_fn is not None:
            return self.value_for_access_token_fn(access_token, *args)
        return access_token

    def value_for_refresh_token(self, refresh_token: str, *args: Any) -> str:
        if self.value_for_refresh_token_fn is not None:
            return self.value_for_refresh_token_fn(refresh_token, *args)
        return refresh_token


__all__ = ["Scope", "normalize_scope_name", "camelize"]
