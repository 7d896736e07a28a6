"""
Flow check tests: state, PKCE and nonce cookies.
"""

import base64
import hashlib

import pytest

from authflow.auth import checks
from authflow.auth.cookies import create_cookies_options
from authflow.auth.tokens import JWTOptions
from authflow.exceptions import ValidationError
from authflow.tests.conftest import TEST_SECRET, make_request


class FakeProvider:
    """Just the attributes the check helpers read."""

    def __init__(self, enabled=checks.CHECKS):
        self.id = "fake"
        self.checks = list(enabled)
        self.jwt = JWTOptions(secret=TEST_SECRET)
        self.cookies = create_cookies_options(use_secure_cookies=False, cookie_name="authflow")
        self.check_max_age = 900


@pytest.fixture
def provider():
    return FakeProvider()


class TestPKCE:

    def test_code_challenge_is_s256_of_verifier(self):
        verifier = checks.generate_code_verifier()
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")
        assert checks.generate_code_challenge(verifier) == expected
        assert len(verifier) == 43

    def test_use_pkce_returns_verifier_and_clears_cookie(self, provider):
        challenge, cookie = checks.create_pkce(provider)
        request = make_request("GET", "/auth/callback/fake", cookies={cookie.name: cookie.value})

        verifier, cleared = checks.use_pkce(request, provider)

        assert checks.generate_code_challenge(verifier) == challenge
        assert cleared.is_cleared
        assert cleared.name == "authflow.pkce.code_verifier"

    def test_missing_pkce_cookie_raises(self, provider):
        with pytest.raises(ValidationError):
            checks.use_pkce(make_request("GET", "/auth/callback/fake"), provider)


class TestState:

    def test_state_cookie_is_short_lived(self, provider):
        _, cookie = checks.create_state(provider)
        assert cookie.name == "authflow.state"
        assert cookie.max_age == 900
        assert cookie.options.http_only

    def test_matching_state_passes(self, provider):
        state, cookie = checks.create_state(provider)
        request = make_request(
            "GET", f"/auth/callback/fake?code=abc&state={state}", cookies={cookie.name: cookie.value}
        )

        value, cleared = checks.use_state(request, provider)

        assert value == state
        assert cleared.is_cleared

    def test_mismatched_state_raises(self, provider):
        _, cookie = checks.create_state(provider)
        request = make_request(
            "GET", "/auth/callback/fake?code=abc&state=forged", cookies={cookie.name: cookie.value}
        )
        with pytest.raises(ValidationError):
            checks.use_state(request, provider)

    def test_missing_state_parameter_raises(self, provider):
        _, cookie = checks.create_state(provider)
        request = make_request("GET", "/auth/callback/fake?code=abc", cookies={cookie.name: cookie.value})
        with pytest.raises(ValidationError):
            checks.use_state(request, provider)

    def test_missing_state_cookie_raises(self, provider):
        with pytest.raises(ValidationError):
            checks.use_state(make_request("GET", "/auth/callback/fake?state=abc"), provider)

    def test_state_cookie_signed_with_other_secret_raises(self, provider):
        other = FakeProvider()
        other.jwt = JWTOptions(secret="a-completely-different-secret-value-here")
        state, cookie = checks.create_state(other)
        request = make_request(
            "GET", f"/auth/callback/fake?state={state}", cookies={cookie.name: cookie.value}
        )
        with pytest.raises(ValidationError):
            checks.use_state(request, provider)

    def test_state_is_checked_even_when_not_listed(self):
        provider = FakeProvider(enabled=[checks.PKCE])
        with pytest.raises(ValidationError):
            checks.use_state(make_request("GET", "/auth/callback/fake?state=forged"), provider)


class TestNonce:

    def test_validate_nonce(self):
        checks.validate_nonce({"nonce": "abc"}, "abc")
        checks.validate_nonce({}, None)

    def test_nonce_mismatch_raises(self):
        with pytest.raises(ValidationError):
            checks.validate_nonce({"nonce": "abc"}, "xyz")

    def test_missing_nonce_claim_raises(self):
        with pytest.raises(ValidationError):
            checks.validate_nonce({}, "xyz")


class TestCookieNames:

    def test_secure_cookies_use_prefixes(self):
        options = create_cookies_options(use_secure_cookies=True, cookie_name="app")
        assert options.access_token.name == "__Secure-app.access-token"
        assert options.csrf_token.name == "__Host-app.csrf-token"
        assert options.state.options.secure

    def test_plain_cookie_names(self):
        options = create_cookies_options(use_secure_cookies=False, cookie_name="app")
        assert options.refresh_token.name == "app.refresh-token"
        assert not options.refresh_token.options.secure
