from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from scopeward.logging import current_request_id


class ErrorBody(BaseModel):
    """Error envelope body with a stable code value."""

    code: str
    message: str
    details: Optional[Any] = None  # object, array, or null


def _request_id() -> str:
    return current_request_id() or str(uuid4())


class Envelope(BaseModel):
    """API envelope format shared by success and error responses.

    ``request_id`` echoes the request's ``X-Request-ID`` when the request
    context middleware is installed.
    """

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=_request_id)


__all__ = ["ErrorBody", "Envelope"]
