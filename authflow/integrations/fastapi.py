"""
FastAPI / Starlette Adapter
===========================

Seams between Starlette and the engine:

- ``to_internal_request``: Starlette ``Request`` -> ``InternalRequest``
- ``to_framework_response``: ``InternalResponse`` -> Starlette ``Response``
- ``AuthMiddleware``: runs the engine on every request, exposes the user on
  ``request.state.user`` and lets everything the engine does not answer
  through to the application
"""

import logging
from typing import Any, Iterable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from authflow.auth.engine import Auth
from authflow.exceptions import AuthError
from authflow.models import Cookie, InternalRequest, InternalResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Request / Response Translation
# =============================================================================

def to_internal_request(request: Request) -> InternalRequest:
    """
    Normalize a Starlette request. The body is read lazily through
    ``request.body`` so routes the engine ignores never consume it.
    """
    return InternalRequest.build(
        method=request.method,
        url=str(request.url),
        headers=dict(request.headers),
        body_reader=request.body,
        extras={
            "request": request,
            "client_host": request.client.host if request.client else None,
        },
    )


def apply_cookies(response: Response, cookies: Iterable[Cookie]) -> Response:
    for cookie in cookies:
        options = cookie.options
        response.set_cookie(
            key=cookie.name,
            value=cookie.value,
            max_age=options.max_age,
            expires=options.expires,
            path=options.path,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )
    return response


def error_content(error: Exception) -> dict:
    if isinstance(error, AuthError):
        return error.to_dict()
    return {"error": "internal_server_error", "message": "An unexpected error occurred"}


def to_framework_response(internal: InternalResponse) -> Response:
    """
    Render an engine response.

    Errors render as JSON with the error's status; a redirect wins over a
    body; an empty response becomes ``204 No Content``.
    """
    if internal.error is not None:
        status_code = internal.status or getattr(internal.error, "status_code", 500)
        response: Response = JSONResponse(status_code=status_code, content=error_content(internal.error))
    elif internal.redirect:
        response = RedirectResponse(internal.redirect, status_code=internal.status or 302)
    elif internal.body is not None:
        if isinstance(internal.body, (str, bytes)):
            response = Response(internal.body, status_code=internal.status or 200)
        else:
            response = JSONResponse(internal.body, status_code=internal.status or 200)
    else:
        response = Response(status_code=internal.status or 204)

    return apply_cookies(response, internal.cookies)


def should_short_circuit(internal: InternalResponse) -> bool:
    return internal.error is not None or bool(internal.redirect) or internal.body is not None


# =============================================================================
# Middleware
# =============================================================================

class AuthMiddleware(BaseHTTPMiddleware):
    """
    Run ``auth.handle`` for every request.

    Responses with an error, redirect or body are returned directly; anything
    else continues to the application, with the engine's cookies attached to
    the application's response.
    """

    def __init__(self, app, auth: Auth):
        super().__init__(app)
        self.auth = auth

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        internal = await self.auth.handle(to_internal_request(request))
        request.state.user = internal.user

        if should_short_circuit(internal):
            if internal.error is not None:
                logger.info(
                    f"Auth request rejected: {internal.error}",
                    extra={"path": request.url.path, "method": request.method},
                )
            return to_framework_response(internal)

        response = await call_next(request)
        return apply_cookies(response, internal.cookies)


def get_current_user(request: Request) -> Optional[Any]:
    """FastAPI dependency returning the user resolved by ``AuthMiddleware``."""
    return getattr(request.state, "user", None)
