"""
Request / response model and settings tests.
"""

import pytest
from pydantic import ValidationError as SettingsValidationError

from authflow.config import Settings
from authflow.exceptions import UpstreamError, ValidationError
from authflow.models import Cookie, InternalRequest, InternalResponse
from authflow.tests.conftest import make_request


class TestInternalRequest:

    def test_build_parses_cookies_and_query(self):
        request = InternalRequest.build(
            "get",
            "https://app.example.com:8443/auth/callback/x?code=1&state=s",
            headers={"Cookie": "a=1; b=two", "X-Forwarded-For": "10.0.0.1"},
        )

        assert request.method == "GET"
        assert request.path == "/auth/callback/x"
        assert request.origin == "https://app.example.com:8443"
        assert request.query["state"] == "s"
        assert request.cookies == {"a": "1", "b": "two"}
        assert request.headers["x-forwarded-for"] == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_form_and_json_bodies(self):
        form = make_request("POST", "/x", form={"username": "a", "password": "b c"})
        assert await form.form() == {"username": "a", "password": "b c"}

        raw = InternalRequest.build("POST", "http://t/x", body=b'{"a": [1, 2]}')
        assert await raw.json() == {"a": [1, 2]}

    @pytest.mark.asyncio
    async def test_undecodable_form_body_raises_validation_error(self):
        request = InternalRequest.build("POST", "http://t/x", body=b"name=\xff\xfe")
        with pytest.raises(ValidationError):
            await request.form()

    @pytest.mark.asyncio
    async def test_body_is_read_once(self):
        calls = []

        async def reader():
            calls.append(1)
            return b"k=v"

        request = InternalRequest.build("POST", "http://t/x", body_reader=reader)
        await request.form()
        await request.body()
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_missing_body_is_empty(self):
        request = make_request("GET", "/x")
        assert await request.body() == b""
        assert await request.json() is None


class TestInternalResponse:

    def test_merge_last_non_empty_wins_and_cookies_accumulate(self):
        first = InternalResponse(user="a", status=200, cookies=[Cookie(name="one", value="1")])
        second = InternalResponse(redirect="/next", cookies=[Cookie(name="two", value="2")])

        merged = first.merge(second)

        assert merged.user == "a"
        assert merged.status == 200
        assert merged.redirect == "/next"
        assert [c.name for c in merged.cookies] == ["one", "two"]

    def test_merge_error(self):
        error = UpstreamError("down")
        merged = InternalResponse(user="a").merge(InternalResponse(error=error))
        assert merged.error is error

    def test_is_empty(self):
        assert InternalResponse().is_empty
        assert not InternalResponse(cookies=[Cookie.clear("x")]).is_empty

    def test_cleared_cookie(self):
        cookie = Cookie.clear("session")
        assert cookie.is_cleared
        assert cookie.max_age == 0
        assert not Cookie(name="session", value="v").is_cleared


class TestSettings:

    def test_defaults(self):
        settings = Settings(AUTH_SECRET="s" * 32)
        assert settings.AUTH_ACCESS_TOKEN_MAX_AGE == 3600
        assert settings.AUTH_REFRESH_TOKEN_MAX_AGE == 604800
        assert settings.AUTH_CHECK_MAX_AGE == 900
        assert settings.AUTH_COOKIE_NAME == "authflow"
        assert settings.AUTH_HTTP_TIMEOUT_SECONDS == 10.0

    def test_short_secret_rejected(self):
        with pytest.raises(SettingsValidationError):
            Settings(AUTH_SECRET="short")

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(SettingsValidationError):
            Settings(AUTH_SECRET="s" * 32, AUTH_JWT_ALGORITHM="RS256")

    def test_log_level_normalized(self):
        assert Settings(AUTH_SECRET="s" * 32, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("AUTH_COOKIE_NAME", "myapp")
        monkeypatch.setenv("AUTH_USE_SECURE_COOKIES", "true")
        settings = Settings()
        assert settings.AUTH_COOKIE_NAME == "myapp"
        assert settings.AUTH_USE_SECURE_COOKIES is True
