"""
Provider capability interface and the helpers every provider shares.

A provider handles ``login``, ``callback`` and ``logout`` for one
authentication method. Providers are dispatched by ``id`` (and by their page
routes) at routing time; each concrete provider carries its own
configuration.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from authflow.auth.cookies import CookiesOptions, create_cookies_options
from authflow.auth.tokens import JWTOptions
from authflow.config import get_settings
from authflow.exceptions import AuthError, CallbackContractError
from authflow.models import InternalRequest, InternalResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Pages
# =============================================================================

class PageEndpoint(BaseModel):
    """A route plus the HTTP methods it answers to."""
    route: str = Field(..., description="Request path, e.g. /auth/login/github")
    methods: List[str] = Field(default_factory=lambda: ["GET"], description="Allowed methods")

    def matches(self, request: InternalRequest) -> bool:
        return request.path == self.route and request.method in self.methods


class Pages(BaseModel):
    login: PageEndpoint
    callback: PageEndpoint


def default_pages(
    provider_id: str,
    login_methods: Sequence[str] = ("GET",),
    callback_methods: Sequence[str] = ("GET",),
    overrides: Optional[Mapping[str, Any]] = None,
) -> Pages:
    """
    Default ``/auth/login/<id>`` and ``/auth/callback/<id>`` pages, with
    per-page caller overrides (a route string, a mapping, or a PageEndpoint).
    """
    pages = {
        "login": PageEndpoint(route=f"/auth/login/{provider_id}", methods=list(login_methods)),
        "callback": PageEndpoint(route=f"/auth/callback/{provider_id}", methods=list(callback_methods)),
    }
    for name, override in (overrides or {}).items():
        if name not in pages or override is None:
            continue
        if isinstance(override, str):
            pages[name] = pages[name].model_copy(update={"route": override})
        elif isinstance(override, PageEndpoint):
            pages[name] = override
        else:
            pages[name] = pages[name].model_copy(update=dict(override))
    return Pages(**pages)


# =============================================================================
# Callback Helpers
# =============================================================================

async def maybe_await(value: Any) -> Any:
    """Callbacks may be plain functions or coroutines."""
    if inspect.isawaitable(value):
        return await value
    return value


async def run_callback(name: str, callback: Callable, *args: Any) -> Any:
    """
    Invoke a caller-supplied callback.

    Raises:
        CallbackContractError: If the callback raises anything that is not
            already an ``AuthError``
    """
    try:
        return await maybe_await(callback(*args))
    except AuthError:
        raise
    except Exception as e:
        logger.error(f"{name} callback failed: {e}", exc_info=True)
        raise CallbackContractError(f"{name} callback failed: {e}") from e


def ensure_response(result: Any, name: str = "on_auth") -> InternalResponse:
    """Coerce a callback result into an ``InternalResponse``."""
    if result is None:
        return InternalResponse()
    if isinstance(result, InternalResponse):
        return result
    if isinstance(result, Mapping):
        return InternalResponse.model_validate(dict(result))
    raise CallbackContractError(
        f"{name} callback must return an InternalResponse, a mapping or None, "
        f"got {type(result).__name__}"
    )


def error_response(error: AuthError) -> InternalResponse:
    return InternalResponse(error=error, status=error.status_code)


# =============================================================================
# Provider Interface
# =============================================================================

class Provider(ABC):
    """
    Capability interface shared by every provider variant.

    ``type`` is the variant tag (``oauth``, ``oidc``, ``credentials``,
    ``email``). The router calls ``configure`` once with the session manager's
    token and cookie options so flow cookies are signed with the same secret.
    """

    type: ClassVar[str]

    id: str
    pages: Pages

    def __init__(self) -> None:
        settings = get_settings()
        self.jwt = JWTOptions(
            secret=settings.AUTH_SECRET or "",
            algorithm=settings.AUTH_JWT_ALGORITHM,
        )
        self.cookies: CookiesOptions = create_cookies_options()
        self.check_max_age: int = settings.AUTH_CHECK_MAX_AGE

    def configure(
        self,
        jwt: JWTOptions,
        cookies: CookiesOptions,
        check_max_age: Optional[int] = None,
    ) -> "Provider":
        self.jwt = jwt
        self.cookies = cookies
        if check_max_age is not None:
            self.check_max_age = check_max_age
        return self

    @abstractmethod
    async def login(self, request: InternalRequest) -> InternalResponse:
        """Start authentication for ``request``."""

    @abstractmethod
    async def callback(self, request: InternalRequest) -> InternalResponse:
        """Finish authentication for ``request``."""

    @abstractmethod
    async def logout(self, token: str) -> bool:
        """Best-effort revocation; never raises."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
