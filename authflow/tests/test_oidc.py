"""
OpenID Connect provider tests: discovery, JWKS and ID token validation.
"""

from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from authflow.auth.providers import Google, OIDCProvider
from authflow.exceptions import UpstreamError, ValidationError
from authflow.tests.conftest import cookie_jar, make_request

ISSUER = "https://idp.example.com"
CLIENT_ID = "oidc-client"
TEST_KID = "test-key-id-2024"


def generate_test_keys():
    """Generate RSA key pair for testing"""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
        backend=default_backend()
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )
    return private_pem.decode(), private_key.public_key()


TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = generate_test_keys()


def create_mock_jwks(kid: str = TEST_KID) -> dict:
    key = RSAAlgorithm.to_jwk(TEST_PUBLIC_KEY, as_dict=True)
    key.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return {"keys": [key]}


def create_id_token(nonce=None, audience=CLIENT_ID, issuer=ISSUER, exp_delta_minutes=5, kid=TEST_KID) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "iss": issuer,
        "sub": "user-123",
        "aud": audience,
        "iat": now,
        "exp": now + timedelta(minutes=exp_delta_minutes),
        "email": "ada@example.com",
        "name": "Ada Lovelace",
    }
    if nonce is not None:
        payload["nonce"] = nonce
    return jwt.encode(payload, TEST_PRIVATE_KEY, algorithm="RS256", headers={"kid": kid})


class MockIdentityProvider:
    """Discovery, JWKS, token and userinfo endpoints for one issuer."""

    def __init__(self, issuer: str = ISSUER):
        self.issuer = issuer
        self.requests = []
        self.id_token_factory = lambda: create_id_token()
        self.discovery = {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}/authorize",
            "token_endpoint": f"{issuer}/token",
            "userinfo_endpoint": f"{issuer}/userinfo",
            "jwks_uri": f"{issuer}/jwks",
            "code_challenge_methods_supported": ["S256"],
            "id_token_signing_alg_values_supported": ["RS256"],
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.discovery)
        if path == "/jwks":
            return httpx.Response(200, json=create_mock_jwks())
        if path == "/token":
            return httpx.Response(200, json={
                "access_token": "oidc-access-token",
                "token_type": "Bearer",
                "id_token": self.id_token_factory(),
            })
        if path == "/userinfo":
            return httpx.Response(200, json={"picture": "https://example.com/ada.png"})
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)


@pytest.fixture
def idp():
    return MockIdentityProvider()


def make_provider(idp, **kwargs):
    return OIDCProvider(CLIENT_ID, "oidc-secret", issuer=ISSUER, id="idp", http_client=idp.client(), **kwargs)


async def login_and_callback(provider, idp, nonce_override=None):
    login = await provider.login(make_request("GET", "/auth/login/idp"))
    params = httpx.URL(login.redirect).params
    idp.id_token_factory = lambda: create_id_token(nonce=nonce_override or params.get("nonce"))
    response = await provider.callback(make_request(
        "GET", f"/auth/callback/idp?code=c&state={params['state']}", cookies=cookie_jar(login)
    ))
    return login, params, response


class TestDiscovery:

    @pytest.mark.asyncio
    async def test_login_uses_discovered_authorization_endpoint(self, idp):
        provider = make_provider(idp)

        login = await provider.login(make_request("GET", "/auth/login/idp"))
        params = httpx.URL(login.redirect).params

        assert login.redirect.startswith(f"{ISSUER}/authorize?")
        assert params["scope"] == "openid profile email"
        assert params["nonce"]
        assert params["code_challenge_method"] == "S256"
        assert params["state"]

    @pytest.mark.asyncio
    async def test_discovery_is_cached(self, idp):
        provider = make_provider(idp)
        await provider.login(make_request("GET", "/auth/login/idp"))
        await provider.login(make_request("GET", "/auth/login/idp"))
        assert idp.count("/.well-known/openid-configuration") == 1

    @pytest.mark.asyncio
    async def test_issuer_mismatch_fails_login(self, idp):
        idp.discovery["issuer"] = "https://evil.example.com"
        response = await make_provider(idp).login(make_request("GET", "/auth/login/idp"))
        assert isinstance(response.error, UpstreamError)
        assert response.redirect is None

    @pytest.mark.asyncio
    async def test_pkce_dropped_without_s256_support(self, idp):
        idp.discovery["code_challenge_methods_supported"] = ["plain"]
        provider = make_provider(idp)

        login = await provider.login(make_request("GET", "/auth/login/idp"))
        params = httpx.URL(login.redirect).params

        assert "code_challenge" not in params
        assert params["nonce"]

    @pytest.mark.asyncio
    async def test_logout_without_reachable_issuer_returns_false(self, idp):
        idp.discovery = {"issuer": ISSUER}
        assert await make_provider(idp).logout("token") is False


class TestIDTokenValidation:

    @pytest.mark.asyncio
    async def test_round_trip_yields_verified_claims(self, idp):
        provider = make_provider(idp)

        _, params, response = await login_and_callback(provider, idp)

        assert response.error is None
        assert response.user["sub"] == "user-123"
        assert response.user["email"] == "ada@example.com"
        assert response.user["nonce"] == params["nonce"]
        assert "authflow.nonce" in [c.name for c in response.cookies if c.is_cleared]

    @pytest.mark.asyncio
    async def test_nonce_mismatch_is_rejected(self, idp):
        _, _, response = await login_and_callback(make_provider(idp), idp, nonce_override="replayed")
        assert isinstance(response.error, ValidationError)
        assert response.user is None

    @pytest.mark.asyncio
    async def test_wrong_audience_is_rejected(self, idp):
        provider = make_provider(idp)
        login = await provider.login(make_request("GET", "/auth/login/idp"))
        params = httpx.URL(login.redirect).params
        idp.id_token_factory = lambda: create_id_token(nonce=params["nonce"], audience="someone-else")

        response = await provider.callback(make_request(
            "GET", f"/auth/callback/idp?code=c&state={params['state']}", cookies=cookie_jar(login)
        ))

        assert isinstance(response.error, UpstreamError)

    @pytest.mark.asyncio
    async def test_expired_id_token_is_rejected(self, idp):
        provider = make_provider(idp)
        login = await provider.login(make_request("GET", "/auth/login/idp"))
        params = httpx.URL(login.redirect).params
        idp.id_token_factory = lambda: create_id_token(nonce=params["nonce"], exp_delta_minutes=-10)

        response = await provider.callback(make_request(
            "GET", f"/auth/callback/idp?code=c&state={params['state']}", cookies=cookie_jar(login)
        ))

        assert isinstance(response.error, UpstreamError)

    @pytest.mark.asyncio
    async def test_unknown_kid_refetches_jwks_then_fails(self, idp):
        provider = make_provider(idp)
        login = await provider.login(make_request("GET", "/auth/login/idp"))
        params = httpx.URL(login.redirect).params
        idp.id_token_factory = lambda: create_id_token(nonce=params["nonce"], kid="rotated-key")

        response = await provider.callback(make_request(
            "GET", f"/auth/callback/idp?code=c&state={params['state']}", cookies=cookie_jar(login)
        ))

        assert isinstance(response.error, UpstreamError)
        assert idp.count("/jwks") == 2

    @pytest.mark.asyncio
    async def test_missing_id_token_is_rejected(self, idp):
        provider = make_provider(idp)
        login = await provider.login(make_request("GET", "/auth/login/idp"))
        params = httpx.URL(login.redirect).params
        idp.id_token_factory = lambda: None

        response = await provider.callback(make_request(
            "GET", f"/auth/callback/idp?code=c&state={params['state']}", cookies=cookie_jar(login)
        ))

        assert isinstance(response.error, UpstreamError)

    @pytest.mark.asyncio
    async def test_userinfo_supplements_claims(self, idp):
        provider = make_provider(idp, fetch_userinfo=True)
        _, _, response = await login_and_callback(provider, idp)
        assert response.user["picture"] == "https://example.com/ada.png"
        assert response.user["sub"] == "user-123"


class TestGooglePreset:

    @pytest.mark.asyncio
    async def test_google_pins_revocation_endpoint(self):
        google_idp = MockIdentityProvider(issuer="https://accounts.google.com")
        revoked = []

        def handler(request):
            if request.url.host == "oauth2.googleapis.com":
                revoked.append(request)
                return httpx.Response(200)
            return google_idp.handler(request)

        provider = Google("g-id", "g-secret", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        assert await provider.logout("ya29.token") is True
        assert provider.endpoints.revocation.url == "https://oauth2.googleapis.com/revoke"
        assert len(revoked) == 1
