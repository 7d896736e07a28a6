"""
OpenID Connect provider.

Extends the OAuth 2.0 flow with:
- Discovery of the authorization server from
  ``<issuer>/.well-known/openid-configuration``
- Fetching and caching the issuer's JWKS (JSON Web Key Set)
- Verifying the ID token signature and claims (iss, aud, exp, nonce)

The verified ID token claims are the profile handed to ``on_auth``.
"""

import asyncio
import logging
import time
from typing import Any, ClassVar, Dict, List, Mapping, Optional

from jose import JWTError, jwk, jwt
from pydantic import BaseModel, ConfigDict, Field

from authflow.auth import checks as checks_module
from authflow.auth.providers.oauth import (
    CLIENT_SECRET_POST,
    Endpoint,
    EndpointOverride,
    OAuthEndpoints,
    OAuthProvider,
    TokenSet,
    merge_endpoint,
)
from authflow.exceptions import ConfigurationError, UpstreamError
from authflow.models import Cookie, InternalRequest

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "openid profile email"

DEFAULT_JWKS_CACHE_SECONDS = 3600

# Clock skew tolerance for ID token validation
ID_TOKEN_LEEWAY_SECONDS = 10


class OIDCDefaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    issuer: str
    checks: List[str] = Field(
        default_factory=lambda: [checks_module.PKCE, checks_module.NONCE, checks_module.STATE]
    )
    scope: str = DEFAULT_SCOPE
    endpoints: Dict[str, Endpoint] = Field(default_factory=dict)
    token_auth_method: str = CLIENT_SECRET_POST


class OIDCProvider(OAuthProvider):
    """
    OpenID Connect provider.

    Accepts every ``OAuthProvider`` argument plus:

    Args:
        issuer: Issuer URL; falls back to ``defaults.issuer``
        fetch_userinfo: Also call the userinfo endpoint and merge its fields
            over the ID token claims
        jwks_cache_seconds: How long fetched signing keys are reused
    """

    type: ClassVar[str] = "oidc"

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        *,
        defaults: Optional[OIDCDefaults] = None,
        issuer: Optional[str] = None,
        id: Optional[str] = None,
        endpoints: Optional[Mapping[str, EndpointOverride]] = None,
        checks: Optional[List[str]] = None,
        scope: Optional[str] = None,
        fetch_userinfo: bool = False,
        jwks_cache_seconds: int = DEFAULT_JWKS_CACHE_SECONDS,
        **kwargs: Any,
    ):
        self.issuer = (issuer or (defaults.issuer if defaults else "")).rstrip("/")
        if not self.issuer:
            raise ConfigurationError("OIDC provider needs an issuer")

        # Endpoints come from discovery; caller and preset overrides are
        # applied on top once the discovery document is known.
        self._endpoint_overrides: Dict[str, EndpointOverride] = dict(defaults.endpoints if defaults else {})
        self._endpoint_overrides.update(endpoints or {})

        token_auth_method = kwargs.pop("token_auth_method", None) or (
            defaults.token_auth_method if defaults else None
        )

        super().__init__(
            client_id,
            client_secret,
            id=id or (defaults.id if defaults else None),
            checks=checks if checks is not None else (
                list(defaults.checks) if defaults else
                [checks_module.PKCE, checks_module.NONCE, checks_module.STATE]
            ),
            scope=scope or (defaults.scope if defaults else DEFAULT_SCOPE),
            token_auth_method=token_auth_method,
            **kwargs,
        )

        self.fetch_userinfo = fetch_userinfo
        self.jwks_cache_seconds = jwks_cache_seconds
        self.authorization_server: Optional[Dict[str, Any]] = None
        self._jwks: Optional[Dict[str, Any]] = None
        self._jwks_fetched_at: float = 0.0
        self._lock = asyncio.Lock()

    def _build_endpoints(self, resolved: Dict[str, Optional[Endpoint]]) -> Optional[OAuthEndpoints]:
        # Resolved after discovery
        return None

    @property
    def initialized(self) -> bool:
        return self.authorization_server is not None

    # =========================================================================
    # Discovery
    # =========================================================================

    async def initialize(self) -> None:
        """
        Discover the authorization server once per provider instance.

        Raises:
            UpstreamError: If discovery fails or the document is unusable
        """
        if self.initialized:
            return

        async with self._lock:
            if self.initialized:
                return

            url = f"{self.issuer}/.well-known/openid-configuration"
            document = self.read_json(await self.send("GET", url), "OIDC discovery")

            if document.get("issuer", "").rstrip("/") != self.issuer:
                raise UpstreamError(
                    f"Discovery document issuer {document.get('issuer')!r} does not match {self.issuer!r}"
                )
            for key in ("authorization_endpoint", "token_endpoint", "jwks_uri"):
                if not document.get(key):
                    raise UpstreamError(f"Discovery document is missing '{key}'")

            discovered: Dict[str, Optional[Endpoint]] = {
                "authorization": Endpoint(url=document["authorization_endpoint"]),
                "token": Endpoint(url=document["token_endpoint"]),
                "userinfo": Endpoint(url=document["userinfo_endpoint"]) if document.get("userinfo_endpoint") else None,
                "revocation": Endpoint(url=document["revocation_endpoint"]) if document.get("revocation_endpoint") else None,
            }
            for name, override in self._endpoint_overrides.items():
                discovered[name] = merge_endpoint(discovered.get(name), override)

            supported = document.get("code_challenge_methods_supported") or []
            if checks_module.PKCE in self.checks and "S256" not in supported:
                logger.info(f"Issuer {self.issuer} does not advertise S256 PKCE; using nonce instead")
                self.checks = [c for c in self.checks if c != checks_module.PKCE]
                if checks_module.NONCE not in self.checks:
                    self.checks.append(checks_module.NONCE)

            self.endpoints = OAuthEndpoints(**discovered)
            self.authorization_server = document

    # =========================================================================
    # JWKS
    # =========================================================================

    async def fetch_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Fetch the issuer's JWKS with caching.

        Raises:
            UpstreamError: If the JWKS endpoint is unreachable or invalid
        """
        now = time.time()
        if not force_refresh and self._jwks and (now - self._jwks_fetched_at) < self.jwks_cache_seconds:
            return self._jwks

        jwks = self.read_json(await self.send("GET", self.authorization_server["jwks_uri"]), "JWKS fetch")
        if "keys" not in jwks:
            raise UpstreamError("Invalid JWKS response: missing 'keys' field")

        self._jwks = jwks
        self._jwks_fetched_at = now
        return jwks

    @staticmethod
    def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Extract the public key from JWKS that matches the token's kid.

        Raises:
            UpstreamError: If the token header is malformed
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise UpstreamError(f"Failed to decode ID token header: {e}") from e

        kid = header.get("kid")
        keys = jwks.get("keys", [])
        if not kid:
            # A single-key set may omit kids
            return keys[0] if len(keys) == 1 else None

        for key in keys:
            if key.get("kid") == kid:
                return key
        return None

    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """
        Verify an ID token's signature and standard claims.

        Raises:
            UpstreamError: If the token is invalid, expired, issued by another
                issuer or for another audience
        """
        jwks = await self.fetch_jwks()
        signing_key = self.get_signing_key(id_token, jwks)
        if not signing_key:
            # Keys may have rotated
            jwks = await self.fetch_jwks(force_refresh=True)
            signing_key = self.get_signing_key(id_token, jwks)
            if not signing_key:
                raise UpstreamError("Unable to find matching signing key in JWKS")

        algorithms = self.authorization_server.get("id_token_signing_alg_values_supported") or ["RS256"]

        try:
            public_key = jwk.construct(signing_key, algorithm=signing_key.get("alg", algorithms[0]))
            claims = jwt.decode(
                id_token,
                public_key.to_pem().decode('utf-8'),
                algorithms=algorithms,
                audience=self.client_id,
                issuer=self.authorization_server["issuer"],
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_iat": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_iss": True,
                    "verify_sub": True,
                    "verify_at_hash": False,
                    "leeway": ID_TOKEN_LEEWAY_SECONDS,
                },
            )
        except JWTError as e:
            raise UpstreamError(f"ID token verification failed: {e}") from e

        return claims

    # =========================================================================
    # Profile
    # =========================================================================

    async def fetch_profile(self, request: InternalRequest, tokens: TokenSet, cookies: List[Cookie]) -> Dict[str, Any]:
        nonce, nonce_cookie = checks_module.use_nonce(request, self)
        if nonce_cookie:
            cookies.append(nonce_cookie)

        id_token = tokens.get("id_token")
        if not id_token:
            raise UpstreamError("No ID token received from identity provider")

        claims = await self.verify_id_token(id_token)
        checks_module.validate_nonce(claims, nonce)

        profile = dict(claims)
        if self.fetch_userinfo and self.endpoints.userinfo is not None:
            profile.update(await super().fetch_profile(request, tokens, cookies))
        return profile

    async def logout(self, token: str) -> bool:
        try:
            await self.initialize()
        except UpstreamError as e:
            logger.warning(f"Discovery failed before revocation for provider '{self.id}': {e}")
            return False
        return await super().logout(token)
