"""FastAPI dependencies for scope-guarded routes.

    app = FastAPI()
    register_exception_handlers(app)
    register_request_context(app)
    register_scope("users")

    @app.get("/me")
    def me(auth: Authentication = Depends(ward("users"))):
        return {"id": auth.id}

The dependencies are plain ``def`` functions: store calls block, so FastAPI
runs them in its threadpool.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from scopeward.service.authentication import Authentication
from scopeward.service.errors import AuthenticationFailed, RefreshFailed
from scopeward.service.warden import ScopeRef, Warden

_STATE_ATTR = "scopeward_warden"


def get_warden(request: Request) -> Warden:
    """The request's Warden, created on first use and kept on request.state."""
    warden = getattr(request.state, _STATE_ATTR, None)
    if warden is None:
        warden = Warden(request)
        setattr(request.state, _STATE_ATTR, warden)
    return warden


def ward(scope: ScopeRef) -> Callable[..., Authentication]:
    """Dependency requiring an authenticated session for ``scope``.

    A scope ``on_authenticate_failed`` hook may raise its own HTTPException;
    if it returns instead, the request is still rejected with 401.
    """

    def dependency(warden: Warden = Depends(get_warden)) -> Authentication:
        if not warden.ward_by_or_fail(scope):
            raise AuthenticationFailed("Unauthorized", detail={"scope": warden.scope(scope).name})
        return warden.authentication_for(scope)

    return dependency


def refreshable(scope: ScopeRef) -> Callable[..., Authentication]:
    """Dependency requiring (and consuming) a valid refresh token for ``scope``."""

    def dependency(warden: Warden = Depends(get_warden)) -> Authentication:
        if not warden.validate_refresh_token_for(scope):
            raise RefreshFailed("Forbidden", detail={"scope": warden.scope(scope).name})
        return warden.authentication_for(scope)

    return dependency


__all__ = ["get_warden", "ward", "refreshable"]
