"""
OAuth 2.0 authorization code provider.

This module implements the authorization code flow for any OAuth 2.0
authorization server:

1. ``login`` builds the authorization URL and sets signed state / PKCE
   cookies, then redirects the client to the authorization server
2. ``callback`` validates state, exchanges the code for tokens, fetches the
   user profile and hands it to the caller's ``on_auth`` transform
3. ``logout`` revokes a token at the revocation endpoint, if there is one

A failed step ends the flow with an ``error`` response; nothing is retried.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field

from authflow.auth import checks as checks_module
from authflow.auth.providers.base import (
    Provider,
    default_pages,
    ensure_response,
    error_response,
    maybe_await,
    run_callback,
)
from authflow.config import get_settings
from authflow.exceptions import AuthError, ConfigurationError, UpstreamError, ValidationError
from authflow.models import Cookie, InternalRequest, InternalResponse

logger = logging.getLogger(__name__)

TokenSet = Dict[str, Any]

CLIENT_SECRET_POST = "client_secret_post"
CLIENT_SECRET_BASIC = "client_secret_basic"


# =============================================================================
# Endpoint Configuration
# =============================================================================

class Endpoint(BaseModel):
    """
    One authorization server endpoint.

    ``request`` replaces the default HTTP call: for ``token`` it receives
    ``(provider, form_params)``, for ``userinfo`` ``(provider, tokens)`` and
    for ``revocation`` ``(provider, token)``.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    url: str = Field(..., description="Endpoint URL")
    params: Dict[str, str] = Field(default_factory=dict, description="Extra parameters sent to the endpoint")
    request: Optional[Callable[..., Union[Any, Awaitable[Any]]]] = Field(None, description="Custom request coroutine")


EndpointOverride = Union[str, Endpoint, Mapping[str, Any], None]


class OAuthEndpoints(BaseModel):
    authorization: Endpoint
    token: Endpoint
    userinfo: Optional[Endpoint] = None
    revocation: Optional[Endpoint] = None


class OAuthDefaults(BaseModel):
    """Immutable provider defaults, merged with caller overrides per field."""
    model_config = ConfigDict(frozen=True)

    id: str
    endpoints: OAuthEndpoints
    checks: List[str] = Field(default_factory=lambda: [checks_module.STATE, checks_module.PKCE])
    scope: Optional[str] = None
    token_auth_method: str = CLIENT_SECRET_POST


def merge_endpoint(default: Optional[Endpoint], override: EndpointOverride) -> Optional[Endpoint]:
    """
    Shallow merge: a URL string replaces only the URL; a mapping or Endpoint
    replaces the fields it sets and falls back to the default for the rest.
    """
    if override is None:
        return default
    if isinstance(override, str):
        return default.model_copy(update={"url": override}) if default else Endpoint(url=override)
    if isinstance(override, Endpoint):
        fields = {name: getattr(override, name) for name in override.model_fields_set}
    else:
        fields = dict(override)
    if default is None:
        return Endpoint(**fields)
    return default.model_copy(update=fields)


def merge_endpoints(
    defaults: Optional[OAuthEndpoints],
    overrides: Optional[Mapping[str, EndpointOverride]],
) -> Dict[str, Optional[Endpoint]]:
    overrides = overrides or {}
    merged = {}
    for name in ("authorization", "token", "userinfo", "revocation"):
        default = getattr(defaults, name) if defaults else None
        merged[name] = merge_endpoint(default, overrides.get(name))
    return merged


def _default_on_auth(profile: Any) -> InternalResponse:
    return InternalResponse(user=profile)


# =============================================================================
# Provider
# =============================================================================

class OAuthProvider(Provider):
    """
    Generic OAuth 2.0 provider.

    Args:
        client_id: OAuth client id
        client_secret: OAuth client secret
        defaults: Preset endpoints / checks / scope (see the preset modules)
        id: Provider id; falls back to ``defaults.id``
        endpoints: Per-endpoint overrides (URL string, mapping or Endpoint)
        checks: Subset of ``state``, ``pkce``, ``nonce``; ``state`` is
            always added
        scope: Space-separated scope sent on the authorization request
        pages: Per-page overrides for the login / callback routes
        on_auth: ``(profile) -> InternalResponse | mapping``, sync or async
        redirect_uri: Fixed redirect URI; defaults to
            ``<request origin><callback route>``
        http_client: Shared ``httpx.AsyncClient``; one is created per call
            when omitted
        timeout: Timeout for outbound calls in seconds
        token_auth_method: ``client_secret_post`` or ``client_secret_basic``
        redirect_after_login: Where a completed callback sends the client when
            ``on_auth`` returns neither a redirect nor a body
    """

    type: ClassVar[str] = "oauth"

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        *,
        defaults: Optional[OAuthDefaults] = None,
        id: Optional[str] = None,
        endpoints: Optional[Mapping[str, EndpointOverride]] = None,
        checks: Optional[List[str]] = None,
        scope: Optional[str] = None,
        pages: Optional[Mapping[str, Any]] = None,
        on_auth: Optional[Callable[[Any], Any]] = None,
        redirect_uri: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        token_auth_method: Optional[str] = None,
        redirect_after_login: str = "/",
    ):
        super().__init__()

        self.id = id or (defaults.id if defaults else None)
        if not self.id:
            raise ConfigurationError("OAuth provider needs an id")
        if not client_id:
            raise ConfigurationError(f"Provider '{self.id}' needs a client_id")

        self.client_id = client_id
        self.client_secret = client_secret
        self.defaults = defaults

        resolved = merge_endpoints(defaults.endpoints if defaults else None, endpoints)
        self.endpoints = self._build_endpoints(resolved)

        if checks is not None:
            selected = checks
        elif defaults is not None:
            selected = defaults.checks
        else:
            selected = [checks_module.STATE, checks_module.PKCE]
        unknown = set(selected) - set(checks_module.CHECKS)
        if unknown:
            raise ConfigurationError(f"Unknown checks for provider '{self.id}': {sorted(unknown)}")
        # State is mandatory on every redirect flow
        self.checks: List[str] = [checks_module.STATE] + [c for c in selected if c != checks_module.STATE]

        self.scope = scope if scope is not None else (defaults.scope if defaults else None)
        self.token_auth_method = token_auth_method or (defaults.token_auth_method if defaults else CLIENT_SECRET_POST)
        if self.token_auth_method not in (CLIENT_SECRET_POST, CLIENT_SECRET_BASIC):
            raise ConfigurationError(f"Unsupported token_auth_method: {self.token_auth_method}")

        self.pages = default_pages(self.id, overrides=pages)
        self.on_auth = on_auth or _default_on_auth
        self.redirect_uri = redirect_uri
        self.redirect_after_login = redirect_after_login
        self.http_client = http_client
        self.timeout = timeout if timeout is not None else get_settings().AUTH_HTTP_TIMEOUT_SECONDS

    def _build_endpoints(self, resolved: Dict[str, Optional[Endpoint]]) -> OAuthEndpoints:
        for name in ("authorization", "token", "userinfo"):
            if resolved[name] is None:
                raise ConfigurationError(f"Provider '{self.id}' is missing the {name} endpoint")
        return OAuthEndpoints(**resolved)

    # =========================================================================
    # HTTP
    # =========================================================================

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Issue an outbound request.

        Raises:
            UpstreamError: On network failure or timeout
        """
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed for provider '{self.id}': {e}")
            raise UpstreamError(f"Unable to reach {url}: {e}") from e

    @staticmethod
    def read_json(response: httpx.Response, what: str) -> Dict[str, Any]:
        """
        Raises:
            UpstreamError: On a non-2xx status or a body that is not a JSON object
        """
        data: Any = None
        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            detail = ""
            if isinstance(data, dict):
                detail = data.get("error_description") or data.get("error") or ""
            raise UpstreamError(
                f"{what} failed with status {response.status_code}" + (f": {detail}" if detail else "")
            )

        if not isinstance(data, dict):
            raise UpstreamError(f"{what} returned an invalid JSON body")
        return data

    # =========================================================================
    # Flow Steps
    # =========================================================================

    async def initialize(self) -> None:
        """Only OIDC providers need to discover their authorization server."""

    def callback_url(self, request: InternalRequest) -> str:
        return self.redirect_uri or f"{request.origin}{self.pages.callback.route}"

    async def authorization_url(self, request: InternalRequest) -> Tuple[str, List[Cookie]]:
        params: Dict[str, str] = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.callback_url(request),
        }
        if self.scope:
            params["scope"] = self.scope
        params.update(self.endpoints.authorization.params)

        cookies: List[Cookie] = []

        if checks_module.STATE in self.checks:
            state, cookie = checks_module.create_state(self)
            params["state"] = state
            cookies.append(cookie)

        if checks_module.PKCE in self.checks:
            challenge, cookie = checks_module.create_pkce(self)
            params["code_challenge"] = challenge
            params["code_challenge_method"] = "S256"
            cookies.append(cookie)

        if checks_module.NONCE in self.checks:
            nonce, cookie = checks_module.create_nonce(self)
            params["nonce"] = nonce
            cookies.append(cookie)

        url = httpx.URL(self.endpoints.authorization.url).copy_merge_params(params)
        return str(url), cookies

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        Raises:
            UpstreamError: If the token endpoint fails or returns no access token
        """
        endpoint = self.endpoints.token

        payload: Dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
        }
        auth = None
        if self.client_secret:
            if self.token_auth_method == CLIENT_SECRET_BASIC:
                auth = httpx.BasicAuth(self.client_id, self.client_secret)
            else:
                payload["client_secret"] = self.client_secret
        if code_verifier:
            payload["code_verifier"] = code_verifier
        payload.update(endpoint.params)

        if endpoint.request is not None:
            tokens = await self._custom_request("Token exchange", endpoint.request, payload)
        else:
            response = await self.send(
                "POST",
                endpoint.url,
                data=payload,
                auth=auth,
                headers={"Accept": "application/json"},
            )
            tokens = self.read_json(response, "Token exchange")

        if not isinstance(tokens, dict):
            raise UpstreamError("Token exchange returned an invalid response")

        # Some servers (GitHub) report errors with a 200 status
        if tokens.get("error"):
            raise UpstreamError(
                f"Token exchange failed: {tokens.get('error_description') or tokens['error']}"
            )
        if not tokens.get("access_token"):
            raise UpstreamError("Token response missing access_token")

        return tokens

    async def fetch_profile(self, request: InternalRequest, tokens: TokenSet, cookies: List[Cookie]) -> Dict[str, Any]:
        """
        Fetch the user profile with a fresh access token.

        Raises:
            UpstreamError: If the userinfo endpoint fails or returns no profile
        """
        endpoint = self.endpoints.userinfo

        if endpoint.request is not None:
            profile = await self._custom_request("Profile fetch", endpoint.request, tokens)
        else:
            url = httpx.URL(endpoint.url).copy_merge_params(endpoint.params) if endpoint.params else endpoint.url
            response = await self.send(
                "GET",
                str(url),
                headers={
                    "Authorization": f"Bearer {tokens['access_token']}",
                    "Accept": "application/json",
                },
            )
            profile = self.read_json(response, "Profile fetch")

        if not profile or not isinstance(profile, dict):
            raise UpstreamError("Profile fetch returned no profile")
        return profile

    async def _custom_request(self, what: str, request: Callable, argument: Any) -> Any:
        try:
            return await maybe_await(request(self, argument))
        except AuthError:
            raise
        except httpx.HTTPError as e:
            raise UpstreamError(f"{what} failed: {e}") from e

    # =========================================================================
    # Provider Operations
    # =========================================================================

    async def login(self, request: InternalRequest) -> InternalResponse:
        try:
            await self.initialize()
            url, cookies = await self.authorization_url(request)
        except AuthError as e:
            logger.warning(f"Login failed for provider '{self.id}': {e}")
            return error_response(e)

        logger.debug(f"Redirecting to authorization endpoint for provider '{self.id}'")
        return InternalResponse(status=302, redirect=url, cookies=cookies)

    async def callback(self, request: InternalRequest) -> InternalResponse:
        cookies: List[Cookie] = []
        try:
            return await self._complete(request, cookies)
        except AuthError as e:
            logger.warning(f"Callback failed for provider '{self.id}': {e}")
            failed = error_response(e)
            failed.cookies = [c for c in cookies if c.is_cleared]
            return failed

    async def _complete(self, request: InternalRequest, cookies: List[Cookie]) -> InternalResponse:
        _, state_cookie = checks_module.use_state(request, self)
        if state_cookie:
            cookies.append(state_cookie)

        error = request.query.get("error")
        if error:
            description = request.query.get("error_description") or error
            raise UpstreamError(f"Authorization server returned an error: {description}", status_code=400)

        code = request.query.get("code")
        if not code:
            raise ValidationError("Missing authorization code.")

        await self.initialize()

        code_verifier, pkce_cookie = checks_module.use_pkce(request, self)
        if pkce_cookie:
            cookies.append(pkce_cookie)

        tokens = await self.exchange_code(code, self.callback_url(request), code_verifier)
        profile = await self.fetch_profile(request, tokens, cookies)

        response = ensure_response(await run_callback("on_auth", self.on_auth, profile))
        if response.redirect is None and response.body is None:
            response.redirect = self.redirect_after_login
            response.status = response.status or 302
        response.cookies.extend(cookies)
        return response

    async def logout(self, token: str) -> bool:
        endpoint = self.endpoints.revocation
        if endpoint is None or not token:
            return False

        try:
            if endpoint.request is not None:
                return bool(await self._custom_request("Revocation", endpoint.request, token))

            auth = httpx.BasicAuth(self.client_id, self.client_secret) if self.client_secret else None
            response = await self.send(
                "POST",
                endpoint.url,
                data={"token": token, **endpoint.params},
                auth=auth,
            )
            return response.is_success
        except Exception as e:
            logger.warning(f"Token revocation failed for provider '{self.id}': {e}")
            return False
