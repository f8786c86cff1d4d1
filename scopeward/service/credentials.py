"""Credential extraction from inbound requests."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Mapping, Optional

if TYPE_CHECKING:
    from scopeward.service.authentication import Authentication
    from scopeward.service.scope import Scope


class CredentialSource(ABC):
    """Pulls the id, access token and refresh token for one authentication.

    Subclasses are constructed with the ``Authentication`` they serve and
    read from ``self.request``.
    """

    def __init__(self, authentication: "Authentication") -> None:
        self.authentication = authentication

    @property
    def scope(self) -> "Scope":
        return self.authentication.scope

    @property
    def request(self) -> Any:
        return self.authentication.request

    @abstractmethod
    def retrieve_id(self) -> Optional[str]:
        ...

    @abstractmethod
    def retrieve_access_token(self) -> Optional[str]:
        ...

    @abstractmethod
    def retrieve_refresh_token(self) -> Optional[str]:
        ...


class HeaderCredentialSource(CredentialSource):
    """Reads ``X-<Scope>-Id``, ``X-<Scope>-Access-Token`` and
    ``X-<Scope>-Refresh-Token``.

    ``<Scope>`` is the camel-cased scope name, e.g. ``X-AdminUser-Id``. The
    request may be anything with a ``headers`` mapping (Starlette, requests,
    werkzeug) or a mapping of headers itself.
    """

    def __init__(self, authentication: "Authentication") -> None:
        super().__init__(authentication)
        self._cache: dict[str, Optional[str]] = {}

    @property
    def headers(self) -> Mapping[str, str]:
        headers = getattr(self.request, "headers", self.request)
        return headers if headers is not None else {}

    def header_name(self, suffix: str) -> str:
        return f"X-{self.scope.header_prefix}-{suffix}"

    def _header(self, suffix: str) -> Optional[str]:
        if suffix not in self._cache:
            name = self.header_name(suffix)
            headers = self.headers
            value = headers.get(name)
            if value is None:
                # Plain dicts are case sensitive; HTTP header names are not
                lowered = name.lower()
                value = next(
                    (v for k, v in headers.items() if k.lower() == lowered), None
                )
            self._cache[suffix] = value
        return self._cache[suffix]

    def retrieve_id(self) -> Optional[str]:
        return self._header("Id")

    def retrieve_access_token(self) -> Optional[str]:
        return self._header("Access-Token")

    def retrieve_refresh_token(self) -> Optional[str]:
        return self._header("Refresh-Token")


__all__ = ["CredentialSource", "HeaderCredentialSource"]
