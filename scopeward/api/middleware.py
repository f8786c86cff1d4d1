from __future__ import annotations

from fastapi import FastAPI, Request

from scopeward.logging import bind_request_id, unbind_request_id

REQUEST_ID_HEADER = "X-Request-ID"


def register_request_context(app: FastAPI) -> None:
    """Tag every request with a request id for logs and error envelopes.

    The id is taken from the client's ``X-Request-ID`` header, or generated,
    and echoed back on the response.
    """

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            unbind_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = ["register_request_context", "REQUEST_ID_HEADER"]
