"""
First-party providers: Credentials (username + password) and Email.

Both hand the raw request to the caller's ``on_auth`` callback and return its
result directly; there is no redirect round trip to validate.
"""

import logging
from typing import Any, Callable, ClassVar, Mapping, Optional, Sequence

from authflow.auth.providers.base import (
    Provider,
    default_pages,
    ensure_response,
    error_response,
    run_callback,
)
from authflow.exceptions import AuthError
from authflow.models import InternalRequest, InternalResponse

logger = logging.getLogger(__name__)


class CredentialsProvider(Provider):
    """
    Credentials provider (first-party only).

    Args:
        on_auth: ``(request) -> InternalResponse | mapping | None``, sync or
            async. Read the submitted form with ``await request.form()``.
        id: Provider id, also used in the default routes
        pages: Per-page overrides (route string, mapping or PageEndpoint)
        methods: Methods accepted on the login and callback routes
        preserve_method: Redirects returned by ``on_auth`` without a status
            get 307 (keep method and body) instead of 302
    """

    type: ClassVar[str] = "credentials"

    def __init__(
        self,
        on_auth: Callable[[InternalRequest], Any],
        *,
        id: str = "credentials",
        pages: Optional[Mapping[str, Any]] = None,
        methods: Sequence[str] = ("POST",),
        preserve_method: bool = False,
    ):
        super().__init__()
        self.id = id
        self.on_auth = on_auth
        self.preserve_method = preserve_method
        self.pages = default_pages(id, methods, methods, pages)

    async def login(self, request: InternalRequest) -> InternalResponse:
        try:
            response = ensure_response(await run_callback("on_auth", self.on_auth, request))
        except AuthError as e:
            logger.warning(f"{self.type} login failed for provider '{self.id}': {e}")
            return error_response(e)

        if response.redirect and response.status is None:
            response.status = 307 if self.preserve_method else 302
        return response

    async def callback(self, request: InternalRequest) -> InternalResponse:
        return await self.login(request)

    async def logout(self, token: str) -> bool:
        return True


class EmailProvider(CredentialsProvider):
    """
    Email (magic link) provider. The caller's ``on_auth`` sends the link on
    login and verifies it on callback; the engine only routes the requests.
    """

    type: ClassVar[str] = "email"

    def __init__(
        self,
        on_auth: Callable[[InternalRequest], Any],
        *,
        id: str = "email",
        pages: Optional[Mapping[str, Any]] = None,
        methods: Sequence[str] = ("GET", "POST"),
        preserve_method: bool = False,
    ):
        super().__init__(
            on_auth,
            id=id,
            pages=pages,
            methods=methods,
            preserve_method=preserve_method,
        )


def Credentials(on_auth: Callable[[InternalRequest], Any], **kwargs: Any) -> CredentialsProvider:
    return CredentialsProvider(on_auth, **kwargs)


def Email(on_auth: Callable[[InternalRequest], Any], **kwargs: Any) -> EmailProvider:
    return EmailProvider(on_auth, **kwargs)
