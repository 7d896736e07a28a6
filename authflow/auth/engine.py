"""
Request Router
==============

``Auth`` takes an ``InternalRequest`` and decides what happens to it:

1. The logout page is answered; it always clears the session cookies
2. The session manager resolves the current user and refreshes the session
   if the access token is gone but a refresh token is present
3. The other static pages (update, forgot, reset) are answered
4. Provider login / callback routes are dispatched to their provider
5. A provider response carrying a ``user`` gets a new session

The router never raises for engine, provider or callback failures; they come
back as an ``InternalResponse`` with ``error`` set.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from authflow.auth.providers.base import PageEndpoint, Provider, ensure_response, error_response, run_callback
from authflow.auth.session import SessionManager
from authflow.exceptions import AuthError, ConfigurationError
from authflow.models import Cookie, InternalRequest, InternalResponse

logger = logging.getLogger(__name__)

STATIC_PAGES = ("logout", "update", "forgot", "reset")


def default_static_pages(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, PageEndpoint]:
    pages = {name: PageEndpoint(route=f"/auth/{name}", methods=["POST"]) for name in STATIC_PAGES}
    for name, override in (overrides or {}).items():
        if name not in pages:
            raise ConfigurationError(f"Unknown static page: {name}")
        if override is None:
            continue
        if isinstance(override, PageEndpoint):
            pages[name] = override
        elif isinstance(override, str):
            pages[name] = pages[name].model_copy(update={"route": override})
        else:
            pages[name] = pages[name].model_copy(update=dict(override))
    return pages


class Auth:
    """
    Authentication engine.

    Args:
        session: Session manager; its token and cookie options are shared
            with every provider
        providers: Providers to route to; ids must be unique
        pages: Overrides for the static pages (route string, mapping or
            PageEndpoint)
        callbacks: Optional ``(request) -> InternalResponse | mapping | None``
            per static page. The ``logout`` callback runs after the session
            manager has invalidated the session; its response is merged in.

    Raises:
        ConfigurationError: On duplicate provider ids or conflicting routes
    """

    def __init__(
        self,
        session: SessionManager,
        providers: Iterable[Provider],
        pages: Optional[Mapping[str, Any]] = None,
        callbacks: Optional[Mapping[str, Callable[[InternalRequest], Any]]] = None,
    ):
        self.session = session
        self.pages = default_static_pages(pages)

        self.callbacks: Dict[str, Callable[[InternalRequest], Any]] = dict(callbacks or {})
        unknown = set(self.callbacks) - set(STATIC_PAGES)
        if unknown:
            raise ConfigurationError(f"Callbacks given for unknown pages: {sorted(unknown)}")

        self.providers: Dict[str, Provider] = {}
        self.login_routes: Dict[str, Provider] = {}
        self.callback_routes: Dict[str, Provider] = {}

        for provider in providers:
            if provider.id in self.providers:
                raise ConfigurationError(f"Duplicate provider id: '{provider.id}'")
            provider.configure(session.jwt, session.cookies, session.check_max_age)
            self.providers[provider.id] = provider
            self._register_route(self.login_routes, provider.pages.login.route, provider)
            self._register_route(self.callback_routes, provider.pages.callback.route, provider)

        logger.info(f"Auth configured with providers: {', '.join(self.providers) or 'none'}")

    @staticmethod
    def _register_route(routes: Dict[str, Provider], route: str, provider: Provider) -> None:
        if route in routes:
            raise ConfigurationError(
                f"Route {route} is claimed by both '{routes[route].id}' and '{provider.id}'"
            )
        routes[route] = provider

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        return self.providers.get(provider_id)

    async def revoke(self, provider_id: str, token: str) -> bool:
        """Best-effort token revocation at the provider. Never raises."""
        provider = self.get_provider(provider_id)
        if provider is None:
            logger.warning(f"Revocation requested for unknown provider '{provider_id}'")
            return False
        return await provider.logout(token)

    # =========================================================================
    # Request Handling
    # =========================================================================

    async def handle(self, request: InternalRequest) -> InternalResponse:
        try:
            return await self.generate_response(request)
        except AuthError as e:
            logger.warning(
                f"Auth request failed: {e}",
                extra={"path": request.path, "method": request.method},
            )
            return error_response(e)
        except Exception as e:
            logger.error(
                f"Unhandled error while handling auth request: {e}",
                extra={"path": request.path, "method": request.method},
                exc_info=True,
            )
            return InternalResponse(error=e, status=500)

    async def generate_response(self, request: InternalRequest) -> InternalResponse:
        # Logout must work even when the session callbacks are failing
        if self.pages["logout"].matches(request):
            return await self.logout(request)

        session_response = await self.session.handle_request(request)

        for name, page in self.pages.items():
            if page.matches(request):
                return await self._handle_static_page(name, request, session_response)

        provider = self.login_routes.get(request.path)
        if provider is not None and provider.pages.login.matches(request):
            logger.debug(f"Login requested for provider '{provider.id}'")
            response = await provider.login(request)
        else:
            provider = self.callback_routes.get(request.path)
            if provider is None or not provider.pages.callback.matches(request):
                return session_response
            logger.debug(f"Callback received for provider '{provider.id}'")
            response = await provider.callback(request)

        if response.error is not None:
            return response

        if response.user is not None:
            try:
                new_session = await self.session.create_session(response.user)
            except AuthError as e:
                logger.warning(f"Session creation failed for provider '{provider.id}': {e}")
                failed = error_response(e)
                failed.cookies = [c for c in response.cookies if c.is_cleared]
                return failed

            if new_session is not None:
                if new_session.user is not None:
                    response.user = new_session.user
                response.cookies.extend(self.session.create_cookies(new_session))
                logger.info(f"Session created via provider '{provider.id}'")

        return self._assemble(session_response, response)

    async def logout(self, request: InternalRequest) -> InternalResponse:
        """
        Invalidate the session, run the ``logout`` page callback and clear
        both session cookies. A failing callback is logged and never keeps
        the cookies alive.
        """
        response = await self.session.logout(request)

        callback = self.callbacks.get("logout")
        if callback is None:
            return response

        try:
            result = ensure_response(await run_callback("logout", callback, request), "logout")
        except Exception as e:
            logger.warning(f"Logout page callback failed, clearing session anyway: {e}")
            return response

        if result.body is not None and result.redirect is None:
            response.redirect = None
            response.status = result.status

        # Session cookies go last so the callback cannot restore them
        cleared = response.cookies
        response.cookies = []
        response.merge(result)
        response.cookies.extend(cleared)
        return response

    async def _handle_static_page(
        self,
        name: str,
        request: InternalRequest,
        session_response: InternalResponse,
    ) -> InternalResponse:
        callback = self.callbacks.get(name)
        if callback is None:
            return session_response

        result = ensure_response(await run_callback(name, callback, request), name)
        if result.error is not None:
            return result
        return self._assemble(session_response, result)

    @staticmethod
    def _assemble(session_response: InternalResponse, response: InternalResponse) -> InternalResponse:
        # Refresh cookies go first so a session created by this request wins
        cookies: List[Cookie] = list(session_response.cookies)
        cookies.extend(response.cookies)
        response.cookies = cookies
        if response.user is None:
            response.user = session_response.user
        return response
