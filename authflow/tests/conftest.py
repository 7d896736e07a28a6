"""
Shared fixtures and helpers for the authflow test suite.
"""

import os
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx
import pytest

os.environ.setdefault("AUTH_SECRET", "test-secret-key-that-is-long-enough-for-hs256")

from authflow.auth.session import SessionManager
from authflow.config import get_settings
from authflow.models import Cookie, InternalRequest, InternalResponse

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
ORIGIN = "http://testserver"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; reset between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_request(
    method: str,
    path: str,
    cookies: Optional[Dict[str, str]] = None,
    form: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> InternalRequest:
    """Build an InternalRequest against the test origin."""
    all_headers = dict(headers or {})
    if cookies:
        all_headers["cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())
    body = None
    if form is not None:
        all_headers["content-type"] = "application/x-www-form-urlencoded"
        body = urlencode(form).encode()
    return InternalRequest.build(method, f"{ORIGIN}{path}", headers=all_headers, body=body)


def set_cookies(response: InternalResponse) -> Dict[str, str]:
    """Name -> value for every cookie the response sets (not clears)."""
    return {c.name: c.value for c in response.cookies if not c.is_cleared}


def cleared_cookies(response: InternalResponse) -> List[str]:
    return [c.name for c in response.cookies if c.is_cleared]


def cookie_jar(*responses: InternalResponse) -> Dict[str, str]:
    """Replay Set-Cookie semantics across responses, like a browser would."""
    jar: Dict[str, str] = {}
    for response in responses:
        for cookie in response.cookies:
            if cookie.is_cleared:
                jar.pop(cookie.name, None)
            else:
                jar[cookie.name] = cookie.value
    return jar


def find_cookie(response: InternalResponse, name: str) -> Optional[Cookie]:
    for cookie in response.cookies:
        if cookie.name == name:
            return cookie
    return None


class MockAuthorizationServer:
    """
    In-process OAuth authorization server for ``httpx.MockTransport``.

    Records every request and answers the token, userinfo and revocation
    endpoints; responses can be replaced per path.
    """

    BASE = "https://auth.example.com"

    def __init__(self, profile: Optional[Dict[str, Any]] = None):
        self.requests: List[httpx.Request] = []
        self.profile = profile or {"id": 42, "name": "Ada", "email": "ada@example.com"}
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {
            "/token": lambda request: httpx.Response(
                200, json={"access_token": "upstream-access-token", "token_type": "bearer"}
            ),
            "/userinfo": lambda request: httpx.Response(200, json=self.profile),
            "/revoke": lambda request: httpx.Response(200),
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not_found"})
        return route(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def endpoints(self) -> Dict[str, str]:
        return {
            "authorization": f"{self.BASE}/authorize",
            "token": f"{self.BASE}/token",
            "userinfo": f"{self.BASE}/userinfo",
            "revocation": f"{self.BASE}/revoke",
        }


@pytest.fixture
def auth_server():
    return MockAuthorizationServer()


@pytest.fixture
def session_manager():
    return SessionManager(
        create_session=lambda user: {"user": user, "access_token": user, "refresh_token": {"sub": user.get("id")}},
        handle_refresh=lambda tokens: {
            "access_token": {"id": tokens["refresh_token"]["sub"], "refreshed": True},
            "refresh_token": tokens["refresh_token"],
        },
        secret=TEST_SECRET,
    )
