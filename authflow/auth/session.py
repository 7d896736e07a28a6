"""
Token Session Management
========================

Session lifecycle over two signed cookies:

- Access token: short-lived, carries the caller's session payload
- Refresh token: long-lived, carries whatever the caller needs to mint a
  new session

Both tokens are self-contained (signature + expiry); the manager keeps no
server-side state. Creating, refreshing and invalidating sessions are
delegated to caller-supplied callbacks, which may be sync or async.
"""

import logging
from typing import Any, Callable, List, Mapping, Optional

from pydantic import BaseModel, Field

from authflow.auth.cookies import CookiesOptions, create_cookies_options
from authflow.auth.providers.base import ensure_response, maybe_await, run_callback
from authflow.auth.tokens import JWTOptions
from authflow.config import get_settings
from authflow.exceptions import CallbackContractError, ConfigurationError
from authflow.models import Cookie, InternalRequest, InternalResponse

logger = logging.getLogger(__name__)


class NewSession(BaseModel):
    """Result of ``create_session`` / ``handle_refresh``."""
    user: Any = Field(None, description="User to expose on the response; defaults to the provider's user")
    access_token: Any = Field(None, description="Session payload signed into the access-token cookie")
    refresh_token: Any = Field(None, description="Payload signed into the refresh-token cookie")


def _identity(session: Any) -> Any:
    return session


def _coerce_session(result: Any, name: str) -> Optional[NewSession]:
    if result is None:
        return None
    if isinstance(result, NewSession):
        return result
    if isinstance(result, Mapping):
        return NewSession.model_validate(dict(result))
    raise CallbackContractError(
        f"{name} callback must return a NewSession, a mapping or None, got {type(result).__name__}"
    )


class SessionManager:
    """
    Token-based session manager.

    Args:
        create_session: ``(user) -> NewSession | mapping | None``
        handle_refresh: ``({"access_token", "refresh_token"}) -> NewSession |
            mapping | None``; without it sessions cannot be renewed
        on_invalidate_session: ``(session, refresh) -> InternalResponse |
            mapping | None``, called on logout
        get_user_from_session: ``(session) -> user``; identity by default
        secret: Signing secret (``AUTH_SECRET``)
        algorithm: HMAC algorithm (``AUTH_JWT_ALGORITHM``)
        access_token_max_age: Seconds (``AUTH_ACCESS_TOKEN_MAX_AGE``)
        refresh_token_max_age: Seconds (``AUTH_REFRESH_TOKEN_MAX_AGE``)
        use_secure_cookies: ``__Secure-`` names and the Secure attribute
        cookie_name: Cookie name stem (``AUTH_COOKIE_NAME``)
        logout_redirect: Where logout sends the client (``AUTH_LOGOUT_REDIRECT``)

    Omitted arguments fall back to settings.
    """

    def __init__(
        self,
        create_session: Optional[Callable[[Any], Any]] = None,
        handle_refresh: Optional[Callable[[dict], Any]] = None,
        on_invalidate_session: Optional[Callable[[Any, Any], Any]] = None,
        get_user_from_session: Optional[Callable[[Any], Any]] = None,
        *,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_max_age: Optional[int] = None,
        refresh_token_max_age: Optional[int] = None,
        use_secure_cookies: Optional[bool] = None,
        cookie_name: Optional[str] = None,
        logout_redirect: Optional[str] = None,
    ):
        settings = get_settings()

        secret = secret or settings.AUTH_SECRET
        if not secret:
            raise ConfigurationError("A signing secret is required (set AUTH_SECRET)")

        self.jwt = JWTOptions(
            secret=secret,
            algorithm=algorithm or settings.AUTH_JWT_ALGORITHM,
        )
        self.access_token_max_age = access_token_max_age or settings.AUTH_ACCESS_TOKEN_MAX_AGE
        self.refresh_token_max_age = refresh_token_max_age or settings.AUTH_REFRESH_TOKEN_MAX_AGE
        self.check_max_age = settings.AUTH_CHECK_MAX_AGE
        self.cookies: CookiesOptions = create_cookies_options(use_secure_cookies, cookie_name)
        self.logout_redirect = logout_redirect if logout_redirect is not None else settings.AUTH_LOGOUT_REDIRECT

        self._create_session = create_session or (lambda user: NewSession(user=user, access_token=user))
        self._handle_refresh = handle_refresh
        self._on_invalidate_session = on_invalidate_session
        self._get_user_from_session = get_user_from_session or _identity

    # =========================================================================
    # Reading
    # =========================================================================

    def get_session(self, request: InternalRequest) -> Any:
        """Decoded access-token payload, or ``None``. Never raises."""
        return self.jwt.verify_or_none(request.cookies.get(self.cookies.access_token.name))

    def get_refresh(self, request: InternalRequest) -> Any:
        return self.jwt.verify_or_none(request.cookies.get(self.cookies.refresh_token.name))

    async def get_user(self, request: InternalRequest) -> Any:
        session = self.get_session(request)
        if session is None:
            return None
        return await run_callback("get_user_from_session", self._get_user_from_session, session)

    # =========================================================================
    # Creating
    # =========================================================================

    async def create_session(self, user: Any) -> Optional[NewSession]:
        """
        Raises:
            CallbackContractError: If ``create_session`` fails or returns an
                unusable value
        """
        result = await run_callback("create_session", self._create_session, user)
        return _coerce_session(result, "create_session")

    def create_cookies(self, new_session: Optional[NewSession]) -> List[Cookie]:
        cookies: List[Cookie] = []
        if new_session is None:
            return cookies

        if new_session.access_token is not None:
            token = self.jwt.sign(new_session.access_token, self.access_token_max_age)
            cookies.append(self.cookies.access_token.set(token, max_age=self.access_token_max_age))

        if new_session.refresh_token is not None:
            token = self.jwt.sign(new_session.refresh_token, self.refresh_token_max_age)
            cookies.append(self.cookies.refresh_token.set(token, max_age=self.refresh_token_max_age))

        return cookies

    def clear_cookies(self) -> List[Cookie]:
        return [self.cookies.access_token.clear(), self.cookies.refresh_token.clear()]

    # =========================================================================
    # Refreshing
    # =========================================================================

    async def handle_request(self, request: InternalRequest) -> InternalResponse:
        """
        Resolve the current user and refresh the session when needed.

        A valid access token yields its user. An absent or invalid access
        token with a refresh cookie triggers ``handle_refresh``; each field of
        its result is written back as a cookie, and an invalid refresh token or an empty
        result clears both.

        Raises:
            CallbackContractError: If a caller callback fails
        """
        response = InternalResponse()

        raw_access = request.cookies.get(self.cookies.access_token.name)
        raw_refresh = request.cookies.get(self.cookies.refresh_token.name)

        session = self.jwt.verify_or_none(raw_access)
        if session is not None:
            response.user = await run_callback("get_user_from_session", self._get_user_from_session, session)
            return response

        if not raw_refresh:
            if raw_access:
                response.cookies.append(self.cookies.access_token.clear())
            return response

        refresh = self.jwt.verify_or_none(raw_refresh)
        if refresh is None or self._handle_refresh is None:
            logger.debug("Refresh token rejected; clearing session cookies")
            response.cookies.extend(self.clear_cookies())
            return response

        result = await run_callback(
            "handle_refresh",
            self._handle_refresh,
            {"access_token": None, "refresh_token": refresh},
        )
        new_session = _coerce_session(result, "handle_refresh")

        if new_session is None or new_session == NewSession():
            logger.info("Session refresh declined; clearing session cookies")
            response.cookies.extend(self.clear_cookies())
            return response

        response.cookies.extend(self.create_cookies(new_session))
        response.user = new_session.user
        if response.user is None and new_session.access_token is not None:
            response.user = await run_callback(
                "get_user_from_session", self._get_user_from_session, new_session.access_token
            )
        logger.debug("Refreshed session")
        return response

    # =========================================================================
    # Invalidating
    # =========================================================================

    async def logout(self, request: InternalRequest) -> InternalResponse:
        """
        Invalidate the current session and clear both session cookies.

        A failing ``on_invalidate_session`` is logged; the cookies are
        cleared regardless.
        """
        response = InternalResponse(status=302, redirect=self.logout_redirect)

        session = self.get_session(request)
        refresh = self.get_refresh(request)

        if session is not None and self._on_invalidate_session is not None:
            try:
                result = await maybe_await(self._on_invalidate_session(session, refresh))
                response.merge(ensure_response(result, "on_invalidate_session"))
            except Exception as e:
                logger.error(f"on_invalidate_session callback failed: {e}", exc_info=True)

        response.cookies.extend(self.clear_cookies())
        return response

    invalidate = logout
